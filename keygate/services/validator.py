"""Token activation and validation.

One operation serves both the first check after the redirect (which flips
pending to active) and every later re-check. All negative outcomes collapse
into the same ``valid: false`` result; the reason goes to the security log
only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from keygate.core.logging_config import format_security_event
from keygate.core.security import require_device_id, require_token_id, token_hint
from keygate.models.access_token import AccessToken, TokenState
from keygate.models.base import utc_now
from keygate.services.token_store import TokenStore

security_logger = logging.getLogger("security.tokens")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    expires_at: datetime | None = None


@dataclass(frozen=True)
class EntitlementResult:
    valid: bool
    token_id: str | None = None
    expires_at: datetime | None = None


INVALID = ValidationResult(valid=False)


class TokenValidator:
    """Validate tokens against the store, activating pending ones."""

    def __init__(self, store: TokenStore):
        self.store = store

    async def activate_or_validate(
        self,
        token_id: str,
        device_id: str,
        now: datetime | None = None,
    ) -> ValidationResult:
        """
        Check a token for a device, activating it on the first good check.

        Raises:
            InvalidInputError: Malformed token or device id
            StoreUnavailableError: The store could not be reached
        """
        token_id = require_token_id(token_id)
        device_id = require_device_id(device_id)
        now = now or utc_now()

        token = await self.store.get(token_id)
        if token is None:
            return self._reject("not_found", token_id, device_id)

        if token.device_id != device_id:
            return self._reject("device_mismatch", token_id, device_id)

        if token.state == TokenState.REVOKED:
            return self._reject("revoked", token_id, device_id)

        if token.is_expired(now):
            return self._reject("expired", token_id, device_id)

        if await self.store.newer_active_exists(token, now):
            return self._reject("superseded", token_id, device_id)

        if token.state == TokenState.PENDING:
            if await self.store.activate(token_id, now):
                security_logger.info(
                    "Token activated",
                    extra=format_security_event(
                        event_type="token.activated",
                        severity="info",
                        description="Pending token activated on first validation",
                        device_id=device_id,
                        token_hint=token_hint(token_id),
                    ),
                )
                return ValidationResult(valid=True, expires_at=token.expires_at)

            # Lost the race to a concurrent activation; trust the committed row
            token = await self.store.get(token_id)
            if token is None or token.state != TokenState.ACTIVE or token.is_expired(now):
                return self._reject("activation_conflict", token_id, device_id)

        return ValidationResult(valid=True, expires_at=token.expires_at)

    async def current_entitlement(
        self,
        device_id: str,
        now: datetime | None = None,
    ) -> EntitlementResult:
        """Return the device's entitling token, if any. Never activates."""
        device_id = require_device_id(device_id)
        now = now or utc_now()

        token: AccessToken | None = await self.store.current_for_device(device_id, now)
        if token is None:
            return EntitlementResult(valid=False)
        return EntitlementResult(valid=True, token_id=token.id, expires_at=token.expires_at)

    def _reject(self, reason: str, token_id: str, device_id: str) -> ValidationResult:
        security_logger.info(
            "Token validation rejected",
            extra=format_security_event(
                event_type="token.validation_rejected",
                severity="low",
                description="Token did not validate",
                device_id=device_id,
                token_hint=token_hint(token_id),
                metadata={"reason": reason},
            ),
        )
        return INVALID
