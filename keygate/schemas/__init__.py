"""Pydantic schemas for API request/response validation."""

from keygate.schemas.common import BaseSchema, HealthResponse, MessageResponse
from keygate.schemas.token import (
    DeviceTokensResponse,
    EntitlementRequest,
    EntitlementResponse,
    IssueRequest,
    IssueResponse,
    RevokeRequest,
    StatsResponse,
    TokenSummary,
    ValidateErrorResponse,
    ValidateRequest,
    ValidateResponse,
)

__all__ = [
    "BaseSchema",
    "HealthResponse",
    "MessageResponse",
    "IssueRequest",
    "IssueResponse",
    "ValidateRequest",
    "ValidateResponse",
    "ValidateErrorResponse",
    "EntitlementRequest",
    "EntitlementResponse",
    "RevokeRequest",
    "TokenSummary",
    "DeviceTokensResponse",
    "StatsResponse",
]
