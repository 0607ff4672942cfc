"""
Unit tests for the PostgreSQL and in-memory persistence layers.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from service_passport.app.gating.models import ActionKind, ForumUser, Requirement, USER_LEVEL
from service_passport.app.persistence.memory import InMemoryUserDirectory
from service_passport.app.persistence.postgres import PostgreSQLPersistence
from shared.errors import AccessLayerException

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
ADDRESS = "0x" + "56" * 20


def make_persistence(conn):
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)

    persistence = PostgreSQLPersistence("postgres://localhost/forum")
    persistence.pool = MagicMock()
    persistence.pool.acquire.return_value = acquire
    return persistence


class TestPostgreSQLPersistence:
    """Test cases for PostgreSQLPersistence."""

    @pytest.fixture
    def conn(self):
        return MagicMock()

    @pytest.mark.asyncio
    async def test_save_requirement_upserts(self, conn):
        conn.execute = AsyncMock(return_value="INSERT 0 1")
        persistence = make_persistence(conn)

        await persistence.save_requirement(Requirement(7, ActionKind.REPLY, 10.0, NOW))

        query, *args = conn.execute.await_args.args
        assert "ON CONFLICT (scope, action)" in query
        assert args == ["7", "reply", 10.0, NOW]

    @pytest.mark.asyncio
    async def test_save_requirement_failure(self, conn):
        conn.execute = AsyncMock(side_effect=OSError("connection reset"))
        persistence = make_persistence(conn)

        with pytest.raises(AccessLayerException) as exc_info:
            await persistence.save_requirement(Requirement(USER_LEVEL, ActionKind.REPLY, 10.0, NOW))

        assert exc_info.value.code == "POSTGRES_WRITE_FAILED"

    @pytest.mark.asyncio
    async def test_load_all_requirements(self, conn):
        conn.fetch = AsyncMock(return_value=[
            {"scope": "user_level", "action": "new_topic", "required_score": 5.0, "updated_at": NOW},
            {"scope": "12", "action": "reply", "required_score": 8.5, "updated_at": NOW}
        ])
        persistence = make_persistence(conn)

        requirements = await persistence.load_all_requirements()

        assert requirements == [
            Requirement(USER_LEVEL, ActionKind.NEW_TOPIC, 5.0, NOW),
            Requirement(12, ActionKind.REPLY, 8.5, NOW)
        ]

    @pytest.mark.asyncio
    async def test_get_user_maps_siwe_account(self, conn):
        conn.fetchrow = AsyncMock(return_value={
            "id": 1,
            "username": "alice",
            "passport_score": 17.0,
            "passport_score_last_update": NOW,
            "ethaddress": ADDRESS
        })
        persistence = make_persistence(conn)

        user = await persistence.get_user(1)

        assert user.username == "alice"
        assert user.associated_accounts == [{"name": "siwe", "description": ADDRESS}]
        assert user.passport_score == 17.0

    @pytest.mark.asyncio
    async def test_get_missing_user(self, conn):
        conn.fetchrow = AsyncMock(return_value=None)
        persistence = make_persistence(conn)

        assert await persistence.get_user(404) is None

    @pytest.mark.asyncio
    async def test_save_user_score_guards_timestamp(self, conn):
        conn.execute = AsyncMock(return_value="UPDATE 0")
        persistence = make_persistence(conn)

        assert await persistence.save_user_score(1, 20.0, NOW) is False

        query = conn.execute.await_args.args[0]
        assert "passport_score_last_update <= $3" in query

    @pytest.mark.asyncio
    async def test_health_check(self, conn):
        conn.fetchval = AsyncMock(return_value=1)
        assert await make_persistence(conn).health_check() is True

        conn.fetchval = AsyncMock(side_effect=OSError("down"))
        assert await make_persistence(conn).health_check() is False


class TestInMemoryUserDirectory:
    """Test cases for InMemoryUserDirectory."""

    @pytest.fixture
    def users(self):
        return InMemoryUserDirectory([
            ForumUser(id=1, username="alice", associated_accounts=[{"name": "siwe", "description": ADDRESS}])
        ])

    @pytest.mark.asyncio
    async def test_find_user_by_account_ignores_case(self, users):
        user = await users.find_user_by_account("siwe", ADDRESS.replace("0x", "0X"))

        assert user.id == 1
        assert await users.find_user_by_account("github", ADDRESS) is None

    @pytest.mark.asyncio
    async def test_save_user_score_is_monotonic(self, users):
        assert await users.save_user_score(1, 10.0, NOW) is True
        assert await users.save_user_score(1, 99.0, NOW - timedelta(minutes=1)) is False

        user = await users.get_user(1)
        assert user.passport_score == 10.0
        assert user.passport_score_last_update == NOW

    @pytest.mark.asyncio
    async def test_save_score_for_unknown_user(self, users):
        assert await users.save_user_score(2, 10.0, NOW) is False
