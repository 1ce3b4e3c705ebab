"""API dependencies for dependency injection."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from keygate.core.config import settings
from keygate.core.errors import ForbiddenError, UnauthorizedError
from keygate.core.logging_config import format_security_event
from keygate.core.security import verify_operator_key
from keygate.db.session import AsyncSessionLocal
from keygate.integrations.gate import RedirectGate, get_gate as get_configured_gate
from keygate.services.issuer import TokenIssuer
from keygate.services.operator import TokenOperatorService
from keygate.services.token_store import TokenStore
from keygate.services.validator import TokenValidator

operator_logger = logging.getLogger("security.operator")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency to get database session.

    NOTE: This does NOT auto-commit. The token store commits its own writes.
    On exception, the session is rolled back automatically.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def get_gate() -> RedirectGate:
    """Redirect gate dependency (overridden in tests)."""
    return get_configured_gate()


DBSession = Annotated[AsyncSession, Depends(get_db)]
Gate = Annotated[RedirectGate, Depends(get_gate)]


def get_token_store(db: DBSession) -> TokenStore:
    return TokenStore(db)


Store = Annotated[TokenStore, Depends(get_token_store)]


def get_issuer(store: Store, gate: Gate) -> TokenIssuer:
    return TokenIssuer(store, gate)


def get_validator(store: Store) -> TokenValidator:
    return TokenValidator(store)


def get_operator_service(store: Store) -> TokenOperatorService:
    return TokenOperatorService(store)


async def require_operator(
    request: Request,
    x_operator_key: Annotated[str | None, Header()] = None,
) -> None:
    """Guard operator endpoints with the shared X-Operator-Key header."""
    if not settings.OPERATOR_API_KEY:
        raise ForbiddenError("Operator API is disabled")

    if not verify_operator_key(x_operator_key):
        operator_logger.warning(
            "Operator access denied",
            extra=format_security_event(
                event_type="operator.access_denied",
                severity="medium",
                description="Missing or wrong operator key",
                ip_address=request.client.host if request.client else None,
                metadata={"path": request.url.path},
            ),
        )
        raise UnauthorizedError()


Issuer = Annotated[TokenIssuer, Depends(get_issuer)]
Validator = Annotated[TokenValidator, Depends(get_validator)]
OperatorService = Annotated[TokenOperatorService, Depends(get_operator_service)]
RequireOperator = Depends(require_operator)
