"""
Concurrency tests for token activation.

Two validators with their own sessions race to activate the same pending
token against a file-backed SQLite database. Exactly one UPDATE wins; the
other re-reads the committed row and reports the same result.
"""

import asyncio
import logging
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from keygate.db.session import Base
from keygate.integrations.gate.mock import MockGate
from keygate.models.access_token import TokenState
from keygate.services.issuer import TokenIssuer
from keygate.services.token_store import TokenStore
from keygate.services.validator import TokenValidator


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


class TestConcurrentActivation:
    @pytest.mark.asyncio
    async def test_simultaneous_activation(self, file_session_factory, device_id, t0, caplog):
        async with file_session_factory() as session:
            issued = await TokenIssuer(TokenStore(session), MockGate()).issue(device_id, now=t0)

        first_now = t0 + timedelta(seconds=1)
        second_now = t0 + timedelta(seconds=2)

        async def validate(now):
            async with file_session_factory() as session:
                return await TokenValidator(TokenStore(session)).activate_or_validate(
                    issued.token_id, device_id, now=now
                )

        with caplog.at_level(logging.INFO, logger="security.tokens"):
            results = await asyncio.gather(validate(first_now), validate(second_now))

        assert all(r.valid for r in results)
        assert results[0].expires_at == results[1].expires_at == issued.expires_at

        activations = [r for r in caplog.records if getattr(r, "event_type", None) == "token.activated"]
        assert len(activations) == 1

        async with file_session_factory() as session:
            token = await TokenStore(session).get(issued.token_id)
        assert token.state == TokenState.ACTIVE
        assert token.activated_at in (first_now, second_now)

    @pytest.mark.asyncio
    async def test_cas_only_succeeds_once(self, file_session_factory, device_id, t0):
        async with file_session_factory() as session:
            issued = await TokenIssuer(TokenStore(session), MockGate()).issue(device_id, now=t0)

        async with file_session_factory() as a, file_session_factory() as b:
            won_a = await TokenStore(a).activate(issued.token_id, t0)
            won_b = await TokenStore(b).activate(issued.token_id, t0)

        assert [won_a, won_b] == [True, False]
