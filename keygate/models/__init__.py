"""Database models for KeyGate."""

from keygate.models.access_token import AccessToken, TokenState

__all__ = [
    "AccessToken",
    "TokenState",
]
