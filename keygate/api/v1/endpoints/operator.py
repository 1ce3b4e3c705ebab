"""Operator endpoints: revoke tokens, inspect device history, dashboard stats.

All routes require the ``X-Operator-Key`` header. Token ids are never echoed
back in full.
"""

from fastapi import APIRouter

from keygate.api.deps import OperatorService, RequireOperator
from keygate.core.security import token_hint
from keygate.schemas.common import MessageResponse
from keygate.schemas.token import (
    DeviceTokensResponse,
    RevokeRequest,
    StatsResponse,
    TokenSummary,
)

router = APIRouter(dependencies=[RequireOperator])


@router.post("/tokens/{token_id}/revoke", response_model=MessageResponse)
async def revoke_token(
    token_id: str,
    service: OperatorService,
    data: RevokeRequest | None = None,
):
    """Revoke a token. Revoking twice is harmless."""
    token = await service.revoke(token_id, data.reason if data else None)
    return MessageResponse(
        message="Token revoked",
        details={"tokenHint": token_hint(token.id), "state": token.state.value},
    )


@router.get("/devices/{device_id}/tokens", response_model=DeviceTokensResponse)
async def list_device_tokens(
    device_id: str,
    service: OperatorService,
):
    views = await service.list_device_tokens(device_id)
    return DeviceTokensResponse(
        device_id=device_id,
        tokens=[TokenSummary.model_validate(v) for v in views],
    )


@router.get("/stats", response_model=StatsResponse)
async def token_stats(service: OperatorService):
    stats = await service.stats()
    return StatsResponse(**stats)
