"""VPLink redirect gate adapter."""

import logging

import httpx

from keygate.core.config import settings
from keygate.integrations.gate.interfaces import GateError, RedirectGate

logger = logging.getLogger(__name__)

# Response fields that may carry the short URL, in order of preference
SHORT_URL_FIELDS = ("shortenedUrl", "short_url", "link")


class VPLinkGate(RedirectGate):
    """Calls ``GET {api_url}?api={key}&url={destination}``."""

    name = "vplink"

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url or settings.GATE_API_URL
        self.api_key = api_key if api_key is not None else settings.GATE_API_KEY
        self.timeout = timeout if timeout is not None else settings.GATE_TIMEOUT_SECONDS
        self._transport = transport

    async def shorten(self, destination_url: str) -> str:
        if not self.api_key:
            raise GateError("Gate API key is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, verify=True, transport=self._transport
            ) as client:
                response = await client.get(
                    self.api_url,
                    params={"api": self.api_key, "url": destination_url},
                )
        except httpx.TimeoutException as e:
            raise GateError("Gate request timed out") from e
        except httpx.HTTPError as e:
            raise GateError(f"Gate request failed: {type(e).__name__}") from e

        if response.status_code != 200:
            raise GateError(f"Gate returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise GateError("Gate returned a non-JSON response") from e

        if not isinstance(data, dict):
            raise GateError("Gate returned an unexpected payload")

        if data.get("status") != "success" and not data.get("shortenedUrl"):
            logger.warning(
                "Gate rejected shorten request",
                extra={"event_type": "gate.rejected", "gate": self.name},
            )
            raise GateError("Gate rejected the request")

        for field in SHORT_URL_FIELDS:
            value = data.get(field)
            if isinstance(value, str) and value:
                return value

        raise GateError("Gate response has no short URL")
