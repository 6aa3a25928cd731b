"""HTTP client for the CatNest REST API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from catnest.sync.errors import TransportError, WriteRejectedError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _error_code(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"http_{response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"http_{response.status_code}"


class CatNestClient:
    """Thin requests wrapper; reads raise TransportError, writes WriteRejectedError."""

    def __init__(
        self,
        base_url: str,
        access_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout
        self.user: Optional[Dict[str, Any]] = None

    @property
    def user_id(self) -> Optional[str]:
        if not self.user:
            return None
        return str(self.user.get("id"))

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        write: bool = False,
    ) -> Dict[str, Any]:
        error_cls = WriteRejectedError if write else TransportError
        url = f"{self.base_url}{API_PREFIX}{path}"
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("%s %s failed: %s", method, path, exc)
            raise error_cls(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            code = _error_code(response)
            logger.error("%s %s returned %s (%s)", method, path, response.status_code, code)
            if write:
                raise WriteRejectedError(code, status_code=response.status_code)
            raise TransportError(f"{method} {path}: {code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise error_cls(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise error_cls(f"{method} {path} returned unexpected body")
        return body

    # ---- auth ----

    def login_device(
        self,
        device_id: str,
        nickname: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"device_id": device_id}
        if nickname:
            payload["nickname"] = nickname
        if avatar_url:
            payload["avatar_url"] = avatar_url
        body = self._request("POST", "/auth/device", json=payload, write=True)
        self.access_token = body["access_token"]
        self.user = body["user"]
        return self.user

    # ---- support chat ----

    def open_support_session(self) -> Dict[str, Any]:
        return self._request("POST", "/support/sessions", json={}, write=True)["data"]

    def list_support_sessions(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit else None
        return self._request("GET", "/support/sessions", params=params)["data"]

    def fetch_support_messages(self, session_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {"limit": limit} if limit else None
        return self._request("GET", f"/support/sessions/{session_id}/messages", params=params)["data"]

    def send_support_message(self, session_id: str, content: str, msg_type: str = "text") -> Dict[str, Any]:
        body = self._request(
            "POST",
            f"/support/sessions/{session_id}/messages",
            json={"content": content, "msg_type": msg_type},
            write=True,
        )
        return body["data"]

    def mark_support_session_read(self, session_id: str) -> int:
        return self._request("PATCH", f"/support/sessions/{session_id}/read", write=True).get("updated", 0)

    # ---- notifications ----

    def fetch_notifications(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/notifications")["data"]

    def fetch_unread_count(self) -> int:
        return int(self._request("GET", "/notifications/unread-count")["data"]["count"])

    def mark_notification_read(self, notification_id: str) -> None:
        self._request("POST", f"/notifications/{notification_id}/read", write=True)

    def mark_all_notifications_read(self) -> int:
        return self._request("POST", "/notifications/read-all", write=True).get("updated", 0)

    # ---- comments ----

    def fetch_comments(self, cat_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/cats/{cat_id}/comments")["data"]

    def post_comment(self, cat_id: str, content: str, parent_id: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"content": content}
        if parent_id is not None:
            payload["parent_id"] = parent_id
        return self._request("POST", f"/cats/{cat_id}/comments", json=payload, write=True)["data"]

    def toggle_comment_like(self, comment_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/comments/{comment_id}/like", write=True)["data"]
