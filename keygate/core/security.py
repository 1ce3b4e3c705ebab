"""Identifier generation and validation for access tokens.

Token ids are the capability credential: 32 random bytes rendered as 64
lowercase hex characters. Device ids are 16 random bytes (32 hex characters).
Both formats are fixed, and anything else is rejected before the token store
is consulted.
"""

import hmac
import re
import secrets
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from keygate.core.config import LOCAL_HOSTS, settings
from keygate.core.errors import InvalidInputError

TOKEN_ID_BYTES = 32
DEVICE_ID_BYTES = 16

TOKEN_ID_PATTERN = re.compile(r"^[a-f0-9]{64}$")
DEVICE_ID_PATTERN = re.compile(r"^[a-f0-9]{32}$")

# Query parameter carrying the token id on the callback URL
TOKEN_QUERY_PARAM = "token"


def generate_token_id() -> str:
    """Generate an unguessable token id (256 bits of entropy)."""
    return secrets.token_hex(TOKEN_ID_BYTES)


def generate_device_id() -> str:
    """Generate a random per-installation device id."""
    return secrets.token_hex(DEVICE_ID_BYTES)


def is_valid_token_id(value: object) -> bool:
    return isinstance(value, str) and TOKEN_ID_PATTERN.fullmatch(value) is not None


def is_valid_device_id(value: object) -> bool:
    return isinstance(value, str) and DEVICE_ID_PATTERN.fullmatch(value) is not None


def require_device_id(value: object) -> str:
    """Return the device id or raise InvalidInputError."""
    if not is_valid_device_id(value):
        raise InvalidInputError("Invalid deviceId format")
    return value


def require_token_id(value: object) -> str:
    """Return the token id or raise InvalidInputError."""
    if not is_valid_token_id(value):
        raise InvalidInputError("Invalid token format")
    return value


def token_hint(token_id: str) -> str:
    """Short, non-credential prefix of a token id for logs and operator views."""
    return token_id[:8]


def validate_callback_url(url: str) -> str:
    """
    Check a callback URL against the allow-list.

    Rules:
    - Host must be one of CALLBACK_ALLOWED_HOSTS
    - Scheme must be https (http is tolerated for localhost only)
    - Path must be exactly CALLBACK_PATH
    - No userinfo, no fragment

    Returns:
        The normalized URL

    Raises:
        InvalidInputError: If the URL is malformed or not allow-listed
    """
    if not isinstance(url, str) or not url:
        raise InvalidInputError("Missing or invalid callbackUrl")

    try:
        parts = urlsplit(url)
        hostname = parts.hostname
        parts.port  # raises ValueError on a malformed port
    except ValueError:
        raise InvalidInputError("Invalid callback URL format")

    if parts.scheme not in ("http", "https") or not hostname:
        raise InvalidInputError("Invalid callback URL format")

    if parts.username is not None or parts.password is not None or parts.fragment:
        raise InvalidInputError("Invalid callback URL format")

    allowed_hosts = {h.lower() for h in settings.CALLBACK_ALLOWED_HOSTS}
    if hostname.lower() not in allowed_hosts:
        raise InvalidInputError("Callback host is not allowed")

    if parts.scheme != "https" and hostname not in LOCAL_HOSTS:
        raise InvalidInputError("Callback URL must use HTTPS")

    if parts.path != settings.CALLBACK_PATH:
        raise InvalidInputError("Invalid callback path")

    return urlunsplit(parts)


def build_destination_url(callback_url: str, token_id: str) -> str:
    """Append the token id to an (already validated) callback URL."""
    parts = urlsplit(callback_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != TOKEN_QUERY_PARAM]
    query.append((TOKEN_QUERY_PARAM, token_id))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))


def verify_operator_key(provided: str | None) -> bool:
    """Constant-time comparison of the operator key."""
    expected = settings.OPERATOR_API_KEY
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
