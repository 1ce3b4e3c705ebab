"""Security middleware for token redaction and logging protection.

Access token ids are capability credentials. They travel in request bodies
and in the callback URL's ``token`` query parameter, so they must never
appear in logs, error traces or Referer headers.
"""

import logging
import re
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# token=<id> query values, and bare 64-hex token ids
TOKEN_QUERY_PATTERN = re.compile(r"(token=)([^&\s\"']+)", re.IGNORECASE)
TOKEN_ID_PATTERN = re.compile(r"\b[a-fA-F0-9]{64}\b")
TOKEN_REDACTED = "[TOKEN_REDACTED]"

TOKEN_PATH_PREFIXES = ("/api/v1/tokens", "/api/v1/operator")


def redact_tokens(text: str) -> str:
    """Replace token ids in free text with [TOKEN_REDACTED]."""
    text = TOKEN_QUERY_PATTERN.sub(rf"\1{TOKEN_REDACTED}", text)
    return TOKEN_ID_PATTERN.sub(TOKEN_REDACTED, text)


def is_token_path(path: str) -> bool:
    return path.startswith(TOKEN_PATH_PREFIXES)


class TokenRedactionFilter(logging.Filter):
    """Logging filter that redacts access token ids from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_tokens(record.msg)

        if record.args:
            if isinstance(record.args, tuple):
                record.args = tuple(
                    redact_tokens(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )
            elif isinstance(record.args, dict):
                record.args = {
                    k: redact_tokens(v) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }

        return True


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add standard security headers to all API responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "0"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith("/api/"):
            response.headers["Content-Security-Policy"] = (
                "default-src 'none'; frame-ancestors 'none'"
            )
            if "Cache-Control" not in response.headers:
                response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, private"

        return response


class TokenRedactionMiddleware(BaseHTTPMiddleware):
    """Stricter Referrer-Policy on endpoints that carry token ids."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        original_path = request.url.path

        response = await call_next(request)

        if is_token_path(original_path):
            response.headers["Referrer-Policy"] = "no-referrer"

        return response


def install_token_redaction_logging() -> None:
    """Install the token redaction filter on root and server loggers."""
    redaction_filter = TokenRedactionFilter()

    root_logger = logging.getLogger()
    root_logger.addFilter(redaction_filter)

    # Filters on the root logger do not apply to records from child loggers,
    # so attach to handlers as well.
    for handler in root_logger.handlers:
        handler.addFilter(redaction_filter)

    logger_names = [
        "uvicorn",
        "uvicorn.access",
        "uvicorn.error",
        "fastapi",
        "security.tokens",
        "security.operator",
        "keygate",
    ]

    for name in logger_names:
        logging.getLogger(name).addFilter(redaction_filter)


def redact_exception_args(exc: Exception) -> Exception:
    """Redact token ids from exception arguments."""
    if exc.args:
        exc.args = tuple(
            redact_tokens(arg) if isinstance(arg, str) else arg
            for arg in exc.args
        )
    return exc
