"""Token issuance.

Creates a pending token bound to a device, then asks the redirect gate for a
completion URL whose destination carries the token id. The pending record is
committed before the gate is called; if the gate fails the record is removed
so no orphan pending token outlives a failed issue.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from keygate.core.config import settings
from keygate.core.errors import StoreUnavailableError, UpstreamUnavailableError
from keygate.core.logging_config import format_security_event
from keygate.core.security import (
    build_destination_url,
    generate_token_id,
    require_device_id,
    token_hint,
    validate_callback_url,
)
from keygate.integrations.gate.interfaces import GateError, RedirectGate
from keygate.models.access_token import AccessToken, TokenState
from keygate.models.base import utc_now
from keygate.services.token_store import TokenStore

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security.tokens")


@dataclass(frozen=True)
class IssueResult:
    token_id: str
    completion_url: str
    expires_at: datetime


def is_usable_gate_url(url: object) -> bool:
    """The gate must hand back an absolute http(s) URL."""
    if not isinstance(url, str) or not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class TokenIssuer:
    """Issue pending tokens through the configured redirect gate."""

    def __init__(
        self,
        store: TokenStore,
        gate: RedirectGate,
        ttl: timedelta | None = None,
        gate_timeout: float | None = None,
    ):
        self.store = store
        self.gate = gate
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.TOKEN_TTL_HOURS)
        self.gate_timeout = (
            gate_timeout if gate_timeout is not None else settings.GATE_TIMEOUT_SECONDS
        )

    async def issue(
        self,
        device_id: str,
        callback_url: str | None = None,
        now: datetime | None = None,
    ) -> IssueResult:
        """
        Issue a new pending token for a device.

        Raises:
            InvalidInputError: Malformed device id or disallowed callback URL
            UpstreamUnavailableError: The gate failed; nothing was kept
            StoreUnavailableError: The token could not be persisted
        """
        device_id = require_device_id(device_id)
        callback = validate_callback_url(callback_url or settings.default_callback_url)

        issued_at = now or utc_now()
        token = AccessToken(
            id=generate_token_id(),
            device_id=device_id,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl,
            state=TokenState.PENDING,
        )
        await self.store.create(token)

        destination = build_destination_url(callback, token.id)
        try:
            completion_url = await asyncio.wait_for(
                self.gate.shorten(destination), timeout=self.gate_timeout
            )
        except asyncio.TimeoutError as exc:
            await self._roll_back(token, "timeout")
            raise UpstreamUnavailableError("Redirect gate timed out") from exc
        except GateError as exc:
            await self._roll_back(token, str(exc))
            raise UpstreamUnavailableError("Redirect gate unavailable") from exc
        except Exception as exc:
            # Adapter broke the GateError contract; treat it as a gate failure
            logger.error("Redirect gate %s raised %s", self.gate.name, type(exc).__name__)
            await self._roll_back(token, type(exc).__name__)
            raise UpstreamUnavailableError("Redirect gate unavailable") from exc

        if not is_usable_gate_url(completion_url):
            await self._roll_back(token, "unusable_url")
            raise UpstreamUnavailableError("Redirect gate returned no usable URL")

        security_logger.info(
            "Token issued",
            extra=format_security_event(
                event_type="token.issued",
                severity="info",
                description="Pending token issued through redirect gate",
                device_id=device_id,
                token_hint=token_hint(token.id),
                metadata={"gate": self.gate.name, "expires_at": token.expires_at.isoformat()},
            ),
        )

        return IssueResult(
            token_id=token.id,
            completion_url=completion_url,
            expires_at=token.expires_at,
        )

    async def _roll_back(self, token: AccessToken, cause: str) -> None:
        """Delete the pending token after a failed gate call."""
        try:
            await self.store.delete(token.id)
        except StoreUnavailableError:
            # The pending token stays behind and simply expires
            security_logger.error(
                "Failed to roll back pending token",
                extra=format_security_event(
                    event_type="token.issue_rollback_failed",
                    severity="high",
                    description="Pending token could not be deleted after gate failure",
                    device_id=token.device_id,
                    token_hint=token_hint(token.id),
                ),
            )
            return

        security_logger.warning(
            "Token issue rolled back",
            extra=format_security_event(
                event_type="token.issue_rolled_back",
                severity="medium",
                description="Gate failed; pending token deleted",
                device_id=token.device_id,
                token_hint=token_hint(token.id),
                metadata={"gate": self.gate.name, "cause": cause},
            ),
        )
