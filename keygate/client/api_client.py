"""Async HTTP client for the KeyGate token API."""

import logging

import httpx
from pydantic import ValidationError

from keygate.client.config import get_client_settings
from keygate.client.exceptions import (
    ClientError,
    RequestRejectedError,
    ServiceUnavailableError,
)
from keygate.schemas.token import EntitlementResponse, IssueResponse, ValidateResponse

logger = logging.getLogger(__name__)


class KeyGateClient:
    """Thin wrapper over httpx.AsyncClient for the /tokens endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_client_settings()
        self._client = httpx.AsyncClient(
            base_url=(base_url or settings.API_BASE_URL).rstrip("/"),
            timeout=timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "KeyGateClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def issue(self, device_id: str, callback_url: str | None = None) -> IssueResponse:
        payload = {"deviceId": device_id}
        if callback_url:
            payload["callbackUrl"] = callback_url
        data = await self._post("/tokens/issue", payload)
        return self._parse(IssueResponse, data)

    async def validate(self, token_id: str, device_id: str) -> ValidateResponse:
        data = await self._post("/tokens/validate", {"tokenId": token_id, "deviceId": device_id})
        return self._parse(ValidateResponse, data)

    async def current_entitlement(self, device_id: str) -> EntitlementResponse:
        data = await self._post("/tokens/entitlement", {"deviceId": device_id})
        return self._parse(EntitlementResponse, data)

    async def _post(self, path: str, payload: dict) -> dict:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.warning("KeyGate request to %s failed: %s", path, type(e).__name__)
            raise ServiceUnavailableError(f"Request failed: {type(e).__name__}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise ServiceUnavailableError(f"Service returned HTTP {response.status_code}")

        if response.status_code == 400:
            raise RequestRejectedError(_error_message(response))

        if response.status_code != 200:
            raise ClientError(f"Unexpected HTTP {response.status_code} from {path}")

        try:
            return response.json()
        except ValueError as e:
            raise ServiceUnavailableError("Service returned a non-JSON response") from e

    @staticmethod
    def _parse(model, data: dict):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ServiceUnavailableError("Service returned an unexpected payload") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "Request rejected"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or "Request rejected")
    return "Request rejected"
