"""Unit tests for operator actions: revocation, history and stats."""

from datetime import timedelta

import pytest

from keygate.core.errors import InvalidInputError, TokenNotFoundError
from keygate.core.security import generate_token_id
from keygate.models.access_token import TokenState


class TestRevoke:
    @pytest.mark.asyncio
    async def test_revoke_records_reason(self, issuer, operator_service, store, device_id, t0):
        issued = await issuer.issue(device_id, now=t0)

        token = await operator_service.revoke(issued.token_id, "abuse", now=t0 + timedelta(minutes=1))

        assert token.state == TokenState.REVOKED
        assert token.revoked_reason == "abuse"
        assert token.revoked_at == t0 + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, issuer, operator_service, device_id, t0):
        issued = await issuer.issue(device_id, now=t0)
        await operator_service.revoke(issued.token_id, "first", now=t0 + timedelta(minutes=1))

        token = await operator_service.revoke(issued.token_id, "second", now=t0 + timedelta(minutes=2))

        assert token.state == TokenState.REVOKED
        assert token.revoked_reason == "first"
        assert token.revoked_at == t0 + timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_unknown_token(self, operator_service):
        with pytest.raises(TokenNotFoundError):
            await operator_service.revoke(generate_token_id())

    @pytest.mark.asyncio
    async def test_malformed_token(self, operator_service):
        with pytest.raises(InvalidInputError):
            await operator_service.revoke("xyz")


class TestDeviceHistory:
    @pytest.mark.asyncio
    async def test_history_newest_first_with_hints(self, issuer, validator, operator_service, device_id, t0):
        first = await issuer.issue(device_id, now=t0)
        await validator.activate_or_validate(first.token_id, device_id, now=t0)
        second = await issuer.issue(device_id, now=t0 + timedelta(hours=1))

        views = await operator_service.list_device_tokens(device_id, now=t0 + timedelta(hours=1))

        assert [v.token_hint for v in views] == [second.token_id[:8], first.token_id[:8]]
        assert [v.state for v in views] == ["pending", "active"]
        assert [v.entitled for v in views] == [False, True]

    @pytest.mark.asyncio
    async def test_history_for_unknown_device_is_empty(self, operator_service, device_id):
        assert await operator_service.list_device_tokens(device_id) == []


class TestStats:
    @pytest.mark.asyncio
    async def test_counts(self, issuer, validator, operator_service, device_id, other_device_id, t0):
        a = await issuer.issue(device_id, now=t0)
        b = await issuer.issue(other_device_id, now=t0)
        await issuer.issue(other_device_id, now=t0 - timedelta(days=3))
        await validator.activate_or_validate(a.token_id, device_id, now=t0)
        await operator_service.revoke(b.token_id, now=t0)

        stats = await operator_service.stats(now=t0 + timedelta(minutes=1))

        assert stats["pending"] == 1
        assert stats["active"] == 1
        assert stats["revoked"] == 1
        assert stats["expired"] == 1
        assert stats["issued_last_24h"] == 2
        assert stats["entitled_devices"] == 1
