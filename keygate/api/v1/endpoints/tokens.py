"""Public token endpoints: issue, validate/activate and entitlement lookup.

These endpoints are unauthenticated; possession of a token id is the
credential. They are rate limited per client IP, and any negative validation
outcome is reported with the same ``{valid: false}`` body.
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from keygate.api.deps import Issuer, Validator
from keygate.core.errors import InvalidInputError, StoreUnavailableError
from keygate.core.rate_limit import ISSUE_LIMIT, VALIDATE_LIMIT, limiter
from keygate.schemas.token import (
    EntitlementRequest,
    EntitlementResponse,
    IssueRequest,
    IssueResponse,
    ValidateErrorResponse,
    ValidateRequest,
    ValidateResponse,
)

router = APIRouter()


@router.post("/issue", response_model=IssueResponse)
@limiter.limit(ISSUE_LIMIT)
async def issue_token(
    request: Request,
    data: IssueRequest,
    issuer: Issuer,
):
    """
    Issue a pending token for a device and return the gate URL.

    The browser is sent to ``completionURL``; after the gate it lands on the
    callback with ``?token=<tokenId>``, and the client must then call
    ``/tokens/validate``.
    """
    result = await issuer.issue(data.device_id, data.callback_url)
    return IssueResponse(
        token_id=result.token_id,
        completion_url=result.completion_url,
        expires_at=result.expires_at,
    )


@router.post(
    "/validate",
    response_model=ValidateResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ValidateErrorResponse},
        503: {"model": ValidateErrorResponse},
    },
)
@limiter.limit(VALIDATE_LIMIT)
async def validate_token(
    request: Request,
    data: ValidateRequest,
    validator: Validator,
):
    """Activate a pending token or re-validate an active one."""
    try:
        result = await validator.activate_or_validate(data.token_id, data.device_id)
    except InvalidInputError as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ValidateErrorResponse(error=e.message).model_dump(by_alias=True),
        )
    except StoreUnavailableError:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ValidateErrorResponse(error="Service unavailable").model_dump(by_alias=True),
        )

    return ValidateResponse(valid=result.valid, expires_at=result.expires_at)


@router.post(
    "/entitlement",
    response_model=EntitlementResponse,
    response_model_exclude_none=True,
)
@limiter.limit(VALIDATE_LIMIT)
async def current_entitlement(
    request: Request,
    data: EntitlementRequest,
    validator: Validator,
):
    """Look up the device's currently entitling token, if any."""
    result = await validator.current_entitlement(data.device_id)
    return EntitlementResponse(
        valid=result.valid,
        token_id=result.token_id,
        expires_at=result.expires_at,
    )
