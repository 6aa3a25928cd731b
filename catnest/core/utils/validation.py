"""Input validation helpers."""

from __future__ import annotations

from pydantic import ValidationError


def require_fields(data: dict, *fields: str) -> None:
    for field in fields:
        if field not in data or data[field] in (None, ""):
            raise ValueError(f"Missing required field: {field}")


def jsonable_errors(exc: ValidationError) -> list[dict]:
    errors = exc.errors()
    for err in errors:
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        # Inputs may carry non-JSON values (bytes, datetimes).
        err.pop("input", None)
        err.pop("url", None)
    return errors
