"""SQLAlchemy-backed token store.

The store is the single source of truth for token state. Every method wraps
database failures in ``StoreUnavailableError`` so callers can tell a
transient outage apart from a negative answer.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.core.errors import StoreUnavailableError
from keygate.models.access_token import AccessToken, TokenState

logger = logging.getLogger(__name__)


class TokenStore:
    """Persistence operations for access tokens, one instance per session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error(
                "Token store %s failed: %s",
                operation,
                type(exc).__name__,
                extra={"event_type": "store.error", "operation": operation},
            )
            try:
                await self.session.rollback()
            except SQLAlchemyError:
                logger.exception("Token store rollback failed")
            raise StoreUnavailableError("Token store unavailable") from exc

    async def create(self, token: AccessToken) -> AccessToken:
        """Persist a new token and commit."""
        async with self._guard("create"):
            self.session.add(token)
            await self.session.commit()
        return token

    async def get(self, token_id: str) -> AccessToken | None:
        """Fetch a token by id, always reflecting the committed row."""
        async with self._guard("get"):
            result = await self.session.execute(
                select(AccessToken)
                .where(AccessToken.id == token_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def delete(self, token_id: str) -> None:
        async with self._guard("delete"):
            await self.session.execute(
                delete(AccessToken)
                .where(AccessToken.id == token_id)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

    async def activate(self, token_id: str, now: datetime) -> bool:
        """
        Compare-and-set pending -> active.

        Returns True only for the caller whose UPDATE matched the pending row.
        A concurrent caller that lost the race gets False and should re-read.
        """
        async with self._guard("activate"):
            result = await self.session.execute(
                update(AccessToken)
                .where(
                    AccessToken.id == token_id,
                    AccessToken.state == TokenState.PENDING,
                    AccessToken.expires_at > now,
                )
                .values(state=TokenState.ACTIVE, activated_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            return result.rowcount == 1

    async def revoke(self, token_id: str, reason: str | None, now: datetime) -> bool:
        """Force a token to revoked. Returns False if it was already revoked."""
        async with self._guard("revoke"):
            result = await self.session.execute(
                update(AccessToken)
                .where(
                    AccessToken.id == token_id,
                    AccessToken.state != TokenState.REVOKED,
                )
                .values(
                    state=TokenState.REVOKED,
                    revoked_at=now,
                    revoked_reason=reason,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            return result.rowcount == 1

    async def list_for_device(self, device_id: str) -> list[AccessToken]:
        """All tokens for a device, newest first."""
        async with self._guard("list_for_device"):
            result = await self.session.execute(
                select(AccessToken)
                .where(AccessToken.device_id == device_id)
                .order_by(AccessToken.issued_at.desc(), AccessToken.id.desc())
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())

    async def current_for_device(self, device_id: str, now: datetime) -> AccessToken | None:
        """The most recently issued active, unexpired token of a device."""
        async with self._guard("current_for_device"):
            result = await self.session.execute(
                select(AccessToken)
                .where(
                    AccessToken.device_id == device_id,
                    AccessToken.state == TokenState.ACTIVE,
                    AccessToken.expires_at > now,
                )
                .order_by(AccessToken.issued_at.desc(), AccessToken.id.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def newer_active_exists(self, token: AccessToken, now: datetime) -> bool:
        """True if the device has an active, unexpired token issued after this one."""
        async with self._guard("newer_active_exists"):
            result = await self.session.execute(
                select(func.count())
                .select_from(AccessToken)
                .where(
                    AccessToken.device_id == token.device_id,
                    AccessToken.id != token.id,
                    AccessToken.state == TokenState.ACTIVE,
                    AccessToken.expires_at > now,
                    or_(
                        AccessToken.issued_at > token.issued_at,
                        and_(
                            AccessToken.issued_at == token.issued_at,
                            AccessToken.id > token.id,
                        ),
                    ),
                )
            )
            return (result.scalar() or 0) > 0

    async def stats(self, now: datetime) -> dict[str, Any]:
        """Aggregate counts for the operator dashboard."""
        async with self._guard("stats"):
            by_state = await self.session.execute(
                select(AccessToken.state, func.count()).group_by(AccessToken.state)
            )
            counts = {state.value: 0 for state in TokenState}
            for state, count in by_state.all():
                counts[TokenState(state).value] = count

            expired = await self.session.execute(
                select(func.count())
                .select_from(AccessToken)
                .where(
                    AccessToken.expires_at <= now,
                    AccessToken.state != TokenState.REVOKED,
                )
            )
            issued_recent = await self.session.execute(
                select(func.count())
                .select_from(AccessToken)
                .where(AccessToken.issued_at > now - timedelta(hours=24))
            )
            entitled = await self.session.execute(
                select(func.count(func.distinct(AccessToken.device_id))).where(
                    AccessToken.state == TokenState.ACTIVE,
                    AccessToken.expires_at > now,
                )
            )

        return {
            **counts,
            "expired": expired.scalar() or 0,
            "issued_last_24h": issued_recent.scalar() or 0,
            "entitled_devices": entitled.scalar() or 0,
        }
