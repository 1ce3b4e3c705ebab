"""Token issuance, validation and operator schemas."""

from datetime import datetime

from pydantic import Field

from keygate.schemas.common import BaseSchema


class IssueRequest(BaseSchema):
    """Request a new pending token for a device."""

    device_id: str
    callback_url: str | None = None


class IssueResponse(BaseSchema):
    token_id: str
    completion_url: str = Field(alias="completionURL")
    expires_at: datetime


class ValidateRequest(BaseSchema):
    """Activate (first call) or re-validate a token.

    Fields are optional here so that missing ids are answered with the same
    400 ``{valid: false, error}`` shape as malformed ones.
    """

    token_id: str | None = None
    device_id: str | None = None


class ValidateResponse(BaseSchema):
    valid: bool
    expires_at: datetime | None = None


class ValidateErrorResponse(BaseSchema):
    valid: bool = False
    error: str


class EntitlementRequest(BaseSchema):
    device_id: str


class EntitlementResponse(BaseSchema):
    valid: bool
    token_id: str | None = None
    expires_at: datetime | None = None


class RevokeRequest(BaseSchema):
    reason: str | None = Field(default=None, max_length=255)


class TokenSummary(BaseSchema):
    """Operator view of a token. The id is shown as an 8-character hint only."""

    token_hint: str
    state: str
    issued_at: datetime
    expires_at: datetime
    activated_at: datetime | None = None
    revoked_at: datetime | None = None
    revoked_reason: str | None = None
    entitled: bool


class DeviceTokensResponse(BaseSchema):
    device_id: str
    tokens: list[TokenSummary]


class StatsResponse(BaseSchema):
    pending: int
    active: int
    revoked: int
    expired: int
    issued_last_24h: int = Field(alias="issuedLast24h")
    entitled_devices: int
