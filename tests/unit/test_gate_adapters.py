"""
Unit tests for redirect gate adapters.

The VPLink adapter is exercised against httpx.MockTransport so no network
access is needed.
"""

import httpx
import pytest

from keygate.core.config import settings
from keygate.integrations.gate.factory import GateFactory, get_gate
from keygate.integrations.gate.interfaces import GateError
from keygate.integrations.gate.mock import MockGate
from keygate.integrations.gate.vplink import VPLinkGate

DESTINATION = "https://app.example.com/verify-key?token=" + "a" * 64


def vplink(handler) -> VPLinkGate:
    return VPLinkGate(
        api_url="https://vplink.test/api",
        api_key="k3y",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestVPLinkGate:
    @pytest.mark.asyncio
    async def test_sends_key_and_destination(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"status": "success", "shortenedUrl": "https://vplink.in/x1"})

        url = await vplink(handler).shorten(DESTINATION)

        assert url == "https://vplink.in/x1"
        assert seen["params"] == {"api": "k3y", "url": DESTINATION}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"shortenedUrl": "https://vplink.in/a"}, "https://vplink.in/a"),
            ({"status": "success", "short_url": "https://vplink.in/b"}, "https://vplink.in/b"),
            ({"status": "success", "link": "https://vplink.in/c"}, "https://vplink.in/c"),
        ],
    )
    async def test_accepts_alternate_fields(self, payload, expected):
        gate = vplink(lambda request: httpx.Response(200, json=payload))
        assert await gate.shorten(DESTINATION) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"status": "error", "message": "invalid api key"}),
            httpx.Response(200, json={"status": "success"}),
            httpx.Response(200, json=["not", "a", "dict"]),
            httpx.Response(200, text="<html>oops</html>"),
            httpx.Response(502, json={"status": "success", "shortenedUrl": "https://vplink.in/x"}),
        ],
    )
    async def test_bad_responses_raise_gate_error(self, response):
        gate = vplink(lambda request: response)
        with pytest.raises(GateError):
            await gate.shorten(DESTINATION)

    @pytest.mark.asyncio
    async def test_transport_error_raises_gate_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GateError):
            await vplink(handler).shorten(DESTINATION)

    @pytest.mark.asyncio
    async def test_timeout_raises_gate_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(GateError, match="timed out"):
            await vplink(handler).shorten(DESTINATION)

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        gate = VPLinkGate(api_key="", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(GateError, match="not configured"):
            await gate.shorten(DESTINATION)

    def test_explicit_zero_timeout_is_kept(self):
        assert VPLinkGate(api_key="k3y", timeout=0).timeout == 0


class TestMockGate:
    @pytest.mark.asyncio
    async def test_deterministic_urls(self):
        gate = MockGate(base_url="https://gate.test/g/")
        first = await gate.shorten(DESTINATION)
        second = await gate.shorten(DESTINATION)

        assert first == second
        assert first == f"https://gate.test/g/{MockGate.slug_for(DESTINATION)}"
        assert len(first.rsplit("/", 1)[1]) == 12

    @pytest.mark.asyncio
    async def test_resolve_round_trip(self):
        gate = MockGate(base_url="https://gate.test/g")
        url = await gate.shorten(DESTINATION)
        assert gate.resolve(url.rsplit("/", 1)[1]) == DESTINATION

    def test_resolve_unknown(self):
        with pytest.raises(GateError):
            MockGate().resolve("nope")

    @pytest.mark.asyncio
    async def test_remembered_links_are_capped(self):
        gate = MockGate(base_url="https://gate.test/g", max_links=2)
        urls = [await gate.shorten(f"{DESTINATION}&n={n}") for n in range(3)]
        slugs = [url.rsplit("/", 1)[1] for url in urls]

        with pytest.raises(GateError):
            gate.resolve(slugs[0])
        assert gate.resolve(slugs[1]).endswith("&n=1")
        assert gate.resolve(slugs[2]).endswith("&n=2")


class TestGateFactory:
    def teardown_method(self):
        GateFactory.reset()

    def test_mock_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "GATE_PROVIDER", "mock")
        GateFactory.reset()
        assert isinstance(get_gate(), MockGate)

    def test_vplink_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "GATE_PROVIDER", "vplink")
        GateFactory.reset()
        assert isinstance(get_gate(), VPLinkGate)

    def test_singleton(self, monkeypatch):
        monkeypatch.setattr(settings, "GATE_PROVIDER", "mock")
        GateFactory.reset()
        assert get_gate() is get_gate()

    def test_unknown_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "GATE_PROVIDER", "bitly")
        GateFactory.reset()
        with pytest.raises(ValueError):
            get_gate()
