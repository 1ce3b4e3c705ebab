"""
Integration tests for operator endpoints.

All operator routes require the X-Operator-Key header and are disabled
entirely when no key is configured.
"""

import pytest

from keygate.core.config import settings
from keygate.core.security import generate_token_id


async def issue_and_activate(client, device_id) -> str:
    issued = await client.post("/api/v1/tokens/issue", json={"deviceId": device_id})
    token_id = issued.json()["tokenId"]
    await client.post("/api/v1/tokens/validate", json={"tokenId": token_id, "deviceId": device_id})
    return token_id


class TestOperatorAuth:
    @pytest.mark.asyncio
    async def test_missing_key_is_401(self, client):
        response = await client.get("/api/v1/operator/stats")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_1001"

    @pytest.mark.asyncio
    async def test_wrong_key_is_401(self, client):
        response = await client.get("/api/v1/operator/stats", headers={"X-Operator-Key": "wrong"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_without_configured_key(self, client, operator_headers, monkeypatch):
        monkeypatch.setattr(settings, "OPERATOR_API_KEY", "")

        response = await client.get("/api/v1/operator/stats", headers=operator_headers)

        assert response.status_code == 403
        assert response.json()["code"] == "AUTHZ_2001"


class TestOperatorActions:
    @pytest.mark.asyncio
    async def test_revoke_invalidates_token(self, client, operator_headers, device_id):
        token_id = await issue_and_activate(client, device_id)

        response = await client.post(
            f"/api/v1/operator/tokens/{token_id}/revoke",
            json={"reason": "chargeback"},
            headers=operator_headers,
        )

        assert response.status_code == 200
        assert response.json()["details"] == {"tokenHint": token_id[:8], "state": "revoked"}
        assert token_id not in response.text

        validated = await client.post(
            "/api/v1/tokens/validate", json={"tokenId": token_id, "deviceId": device_id}
        )
        assert validated.json() == {"valid": False}

    @pytest.mark.asyncio
    async def test_revoke_without_body(self, client, operator_headers, device_id):
        token_id = await issue_and_activate(client, device_id)

        response = await client.post(
            f"/api/v1/operator/tokens/{token_id}/revoke", headers=operator_headers
        )
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_revoke_unknown_token(self, client, operator_headers):
        response = await client.post(
            f"/api/v1/operator/tokens/{generate_token_id()}/revoke", headers=operator_headers
        )

        assert response.status_code == 404
        assert response.json()["code"] == "RES_4001"

    @pytest.mark.asyncio
    async def test_device_history(self, client, operator_headers, device_id):
        token_id = await issue_and_activate(client, device_id)

        response = await client.get(
            f"/api/v1/operator/devices/{device_id}/tokens", headers=operator_headers
        )

        assert response.status_code == 200
        body = response.json()
        assert body["deviceId"] == device_id
        assert body["tokens"][0]["tokenHint"] == token_id[:8]
        assert body["tokens"][0]["state"] == "active"
        assert body["tokens"][0]["entitled"] is True
        assert token_id not in response.text

    @pytest.mark.asyncio
    async def test_stats(self, client, operator_headers, device_id, other_device_id):
        await issue_and_activate(client, device_id)
        await client.post("/api/v1/tokens/issue", json={"deviceId": other_device_id})

        response = await client.get("/api/v1/operator/stats", headers=operator_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["active"] == 1
        assert body["pending"] == 1
        assert body["issuedLast24h"] == 2
        assert body["entitledDevices"] == 1
