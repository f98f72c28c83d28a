import json
import time
from contextvars import ContextVar
from typing import Any, Optional
from uuid import uuid4

from fastapi import Request


REQUEST_ID_HEADER = "X-Request-Id"
REQUEST_ID_MAX_LEN = 128

_REQUEST_ID_CTX: ContextVar[str] = ContextVar("pulseboard_request_id", default="")
_REQUEST_PATH_CTX: ContextVar[str] = ContextVar("pulseboard_request_path", default="")
# Filled once the session cookie or bearer token has been resolved to a user.
_REQUEST_USER_CTX: ContextVar[str] = ContextVar("pulseboard_request_user", default="")


def generate_request_id() -> str:
    return str(uuid4())


def validate_request_id(value: str) -> bool:
    candidate = value.strip()
    return bool(candidate) and len(candidate) <= REQUEST_ID_MAX_LEN


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return ""


def set_request_context(request_id: str, path: str) -> tuple[object, ...]:
    return (
        _REQUEST_ID_CTX.set(request_id),
        _REQUEST_PATH_CTX.set(path),
        _REQUEST_USER_CTX.set(""),
    )


def reset_request_context(tokens: tuple[object, ...]) -> None:
    request_id_token, request_path_token, request_user_token = tokens
    _REQUEST_USER_CTX.reset(request_user_token)
    _REQUEST_PATH_CTX.reset(request_path_token)
    _REQUEST_ID_CTX.reset(request_id_token)


def bind_request_user(user_id: Any) -> None:
    _REQUEST_USER_CTX.set(str(user_id))


def current_request_context() -> dict[str, str]:
    context = {
        "request_id": _REQUEST_ID_CTX.get(),
        "path": _REQUEST_PATH_CTX.get(),
    }
    user_id = _REQUEST_USER_CTX.get()
    if user_id:
        context["user_id"] = user_id
    return context


def log_ctx(
    request: Request,
    user_id: Optional[Any] = None,
    entity_id: Optional[Any] = None,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Structured context for one log line; ``user_id`` defaults to the bound request user."""
    context: dict[str, Any] = {
        "request_id": get_request_id(request),
        "path": request.url.path,
        "method": request.method,
    }
    if user_id is None:
        user_id = _REQUEST_USER_CTX.get() or None
    if user_id is not None:
        context["user_id"] = str(user_id)
    if entity_id is not None:
        context["entity_id"] = str(entity_id)
    if extra:
        for key, value in extra.items():
            if value is not None:
                context[key] = value
    return context


def log_ctx_json(context: dict[str, Any]) -> str:
    return json.dumps(context, separators=(",", ":"), ensure_ascii=False, default=str)


def duration_ms(started_at: float) -> int:
    return int((time.monotonic() - started_at) * 1000)
