"""Operator actions: revocation, per-device history and dashboard stats."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from keygate.core.errors import TokenNotFoundError
from keygate.core.logging_config import format_security_event
from keygate.core.security import require_device_id, require_token_id, token_hint
from keygate.models.access_token import AccessToken
from keygate.models.base import utc_now
from keygate.services.token_store import TokenStore

security_logger = logging.getLogger("security.tokens")


@dataclass(frozen=True)
class TokenView:
    """A token as shown to operators. Never carries the full id."""

    token_hint: str
    state: str
    issued_at: datetime
    expires_at: datetime
    activated_at: datetime | None
    revoked_at: datetime | None
    revoked_reason: str | None
    entitled: bool

    @classmethod
    def from_token(cls, token: AccessToken, entitled: bool) -> "TokenView":
        return cls(
            token_hint=token_hint(token.id),
            state=token.state.value,
            issued_at=token.issued_at,
            expires_at=token.expires_at,
            activated_at=token.activated_at,
            revoked_at=token.revoked_at,
            revoked_reason=token.revoked_reason,
            entitled=entitled,
        )


class TokenOperatorService:
    def __init__(self, store: TokenStore):
        self.store = store

    async def revoke(
        self,
        token_id: str,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> AccessToken:
        """
        Revoke a token. Revoking an already revoked token is a no-op.

        Raises:
            InvalidInputError: Malformed token id
            TokenNotFoundError: No such token
        """
        token_id = require_token_id(token_id)
        now = now or utc_now()

        if await self.store.get(token_id) is None:
            raise TokenNotFoundError("Token not found")

        changed = await self.store.revoke(token_id, reason, now)
        token = await self.store.get(token_id)
        if token is None:
            raise TokenNotFoundError("Token not found")

        if changed:
            security_logger.warning(
                "Token revoked",
                extra=format_security_event(
                    event_type="token.revoked",
                    severity="medium",
                    description="Token revoked by operator",
                    device_id=token.device_id,
                    token_hint=token_hint(token_id),
                    metadata={"reason": reason} if reason else None,
                ),
            )
        return token

    async def list_device_tokens(
        self,
        device_id: str,
        now: datetime | None = None,
    ) -> list[TokenView]:
        """Token history of a device, newest first."""
        device_id = require_device_id(device_id)
        now = now or utc_now()

        tokens = await self.store.list_for_device(device_id)
        current = await self.store.current_for_device(device_id, now)
        current_id = current.id if current else None
        return [TokenView.from_token(t, entitled=t.id == current_id) for t in tokens]

    async def stats(self, now: datetime | None = None) -> dict[str, Any]:
        return await self.store.stats(now or utc_now())
