import multiprocessing
import os

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
# The change feed is in-process: realtime subscribers only see inserts made by
# the same worker, so run one worker and scale with threads.
workers = int(os.environ.get("GUNICORN_WORKERS", "1"))
threads = int(
    os.environ.get("GUNICORN_THREADS", str(multiprocessing.cpu_count() * 4))
)
# SSE responses stay open; keep-alive frames go out every REALTIME_HEARTBEAT_SECONDS.
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "120"))
worker_class = os.environ.get("GUNICORN_WORKER_CLASS", "gthread")
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("GUNICORN_LOGLEVEL", "info")
