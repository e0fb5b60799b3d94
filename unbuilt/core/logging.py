"""structlog setup, log redaction and request IDs.

Secrets are redacted by key name and by pattern inside free text, which
covers the ?token= query string WebSocket clients authenticate with.
Emails are masked rather than dropped.
"""

import logging
import re
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

import structlog

from unbuilt import __version__
from unbuilt.core.config import settings

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

SECRET_KEYS = {
    "password", "secret", "token", "api_key", "apikey", "credential",
    "authorization", "cookie",
}

# Token counters are numbers, not secrets
COUNTER_KEYS = {"tokens", "total_tokens", "input_tokens", "output_tokens", "tokens_used"}

# Logged for support, but only as a masked address
EMAIL_KEYS = {"email", "reported_by_email"}

# WebSocket clients authenticate with ?token=..., which ends up in paths and URLs
INLINE_SECRETS = [
    (re.compile(r"sk-ant-[\w-]+"), "sk-ant-[REDACTED]"),
    (re.compile(r"Bearer\s+[\w.-]+", re.IGNORECASE), "Bearer [REDACTED]"),
    (re.compile(r"([?&]token=)[^&\s]+"), r"\1[REDACTED]"),
]


def mask_email(value: str) -> str:
    """Keep the first character of the local part and the domain."""
    local, sep, domain = value.partition("@")
    if not sep or not local:
        return "[REDACTED]"
    return f"{local[0]}***@{domain}"


def redact_sensitive(data: Any, depth: int = 0) -> Any:
    """Recursively redact secrets and mask emails in log data."""
    if depth > 10:
        return "[MAX_DEPTH]"

    if isinstance(data, dict):
        return {k: _redact_value(k, v, depth) for k, v in data.items()}
    elif isinstance(data, list):
        return [redact_sensitive(item, depth + 1) for item in data]
    elif isinstance(data, str):
        return _redact_string(data)
    return data


def _redact_value(key: str, value: Any, depth: int) -> Any:
    key_lower = key.lower()
    if key_lower in COUNTER_KEYS:
        return value
    if key_lower in EMAIL_KEYS and isinstance(value, str):
        return mask_email(value)
    if any(secret in key_lower for secret in SECRET_KEYS):
        return "[REDACTED]"
    return redact_sensitive(value, depth + 1)


def _redact_string(value: str) -> str:
    for pattern, replacement in INLINE_SECRETS:
        value = pattern.sub(replacement, value)
    return value


def add_context(logger, method_name: str, event_dict: dict) -> dict:
    """Stamp request, user and deployment fields, then redact."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    if user_id_var.get():
        event_dict.setdefault("user_id", user_id_var.get())
    event_dict.update(service="unbuilt-api", version=__version__, environment=settings.environment)

    if not settings.redact_sensitive_data:
        return event_dict
    return redact_sensitive(event_dict)


def configure_logging() -> None:
    """JSON lines in production, colored console output otherwise."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_context,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for noisy in ("httpx", "httpcore", "anthropic", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    return structlog.get_logger(name)


class RequestIDMiddleware:
    """Tag each HTTP request and WebSocket session with an ID.

    HTTP responses echo the ID in ``X-Request-ID``. A WebSocket session keeps
    one ID for its whole lifetime, so every plan-room log line from that
    socket can be correlated.
    """

    def __init__(self, app):
        self.app = app
        self.logger = get_logger("unbuilt.http")

    async def __call__(self, scope, receive, send):
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(b"x-request-id", b"").decode() or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        outcome = {"status": None}

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                outcome["status"] = message["status"]
                message["headers"] = [*message.get("headers", []), (b"x-request-id", request_id.encode())]
            elif message["type"] == "websocket.close":
                outcome["status"] = message.get("code", 1000)
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            event = "request_completed" if scope["type"] == "http" else "websocket_session_ended"
            self.logger.debug(
                event,
                method=scope.get("method"),
                path=scope.get("path"),
                status=outcome["status"],
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            request_id_var.reset(token)
