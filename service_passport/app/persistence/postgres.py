"""
PostgreSQL persistence layer for the Passport service.

Owns the ``passport_requirements`` table and reads/writes the passport
columns on the host forum's ``users`` table.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime

import asyncpg
from shared.logging import get_logger
from shared.errors import AccessLayerException
from ..gating.identity import SIWE_PROVIDER
from ..gating.models import ActionKind, ForumUser, Requirement, Scope, USER_LEVEL, UserLevel


USER_COLUMNS = """
    u.id, u.username, u.passport_score, u.passport_score_last_update,
    a.provider_uid AS ethaddress
"""


class PostgreSQLPersistence:
    """PostgreSQL persistence for requirements and the user score mirror."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("passport.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )

            await self._create_tables()

            self.logger.info("PostgreSQL persistence started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise AccessLayerException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL persistence stopped")

    async def _create_tables(self):
        """Create the requirements table and the user mirror columns."""
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS passport_requirements (
                    scope VARCHAR(64) NOT NULL,
                    action VARCHAR(32) NOT NULL,
                    required_score DOUBLE PRECISION NOT NULL CHECK (required_score >= 0),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    PRIMARY KEY (scope, action)
                );
            """)
            await conn.execute("""
                ALTER TABLE users ADD COLUMN IF NOT EXISTS passport_score DOUBLE PRECISION;
            """)
            await conn.execute("""
                ALTER TABLE users ADD COLUMN IF NOT EXISTS passport_score_last_update TIMESTAMP WITH TIME ZONE;
            """)

    # Requirements

    async def save_requirement(self, requirement: Requirement) -> None:
        """Upsert a requirement."""
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO passport_requirements (scope, action, required_score, updated_at)
                    VALUES ($1, $2, $3, $4)
                    ON CONFLICT (scope, action) DO UPDATE SET
                        required_score = EXCLUDED.required_score,
                        updated_at = EXCLUDED.updated_at
                """,
                    self._scope_to_column(requirement.scope), requirement.action.value,
                    requirement.required_score, requirement.updated_at
                )
        except Exception as e:
            self.logger.error("Error saving requirement", scope=str(requirement.scope), error=str(e))
            raise AccessLayerException("POSTGRES_WRITE_FAILED", "Failed to save requirement")

    async def load_all_requirements(self) -> List[Requirement]:
        """Load every requirement."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT scope, action, required_score, updated_at FROM passport_requirements
            """)
            return [self._row_to_requirement(row) for row in rows]

    # User score mirror

    async def get_user(self, user_id: int) -> Optional[ForumUser]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {USER_COLUMNS}
                FROM users u
                LEFT JOIN user_associated_accounts a
                    ON a.user_id = u.id AND a.provider_name = $2
                WHERE u.id = $1
            """, user_id, SIWE_PROVIDER)
            return self._row_to_user(row) if row else None

    async def find_user_by_account(self, provider: str, uid: str) -> Optional[ForumUser]:
        """User associated with an external account, if any."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                SELECT {USER_COLUMNS}
                FROM user_associated_accounts a
                JOIN users u ON u.id = a.user_id
                WHERE a.provider_name = $1 AND LOWER(a.provider_uid) = LOWER($2)
            """, provider, uid)
            return self._row_to_user(row) if row else None

    async def save_user_score(self, user_id: int, score: float, fetched_at: datetime) -> bool:
        """Write score and timestamp together, never moving the timestamp backwards."""
        async with self.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE users
                SET passport_score = $2, passport_score_last_update = $3
                WHERE id = $1
                  AND (passport_score_last_update IS NULL OR passport_score_last_update <= $3)
            """, user_id, score, fetched_at)
            return result == "UPDATE 1"

    async def get_requirement_stats(self) -> Dict[str, Any]:
        """Get requirement statistics."""
        try:
            async with self.pool.acquire() as conn:
                stats = await conn.fetchrow("""
                    SELECT
                        COUNT(*) AS total_requirements,
                        COUNT(*) FILTER (WHERE scope = 'user_level') AS user_level_requirements,
                        COUNT(*) FILTER (WHERE required_score > 0) AS active_requirements
                    FROM passport_requirements
                """)
                return dict(stats)
        except Exception as e:
            self.logger.error("Error getting requirement stats", error=str(e))
            return {}

    def _scope_to_column(self, scope: Scope) -> str:
        if isinstance(scope, UserLevel):
            return scope.value
        return str(int(scope))

    def _row_to_requirement(self, row) -> Requirement:
        scope: Scope = USER_LEVEL if row['scope'] == USER_LEVEL.value else int(row['scope'])
        return Requirement(
            scope=scope,
            action=ActionKind(row['action']),
            required_score=float(row['required_score']),
            updated_at=row['updated_at']
        )

    def _row_to_user(self, row) -> ForumUser:
        accounts = []
        if row['ethaddress']:
            accounts.append({"name": SIWE_PROVIDER, "description": row['ethaddress']})
        return ForumUser(
            id=row['id'],
            username=row['username'],
            associated_accounts=accounts,
            passport_score=row['passport_score'],
            passport_score_last_update=row['passport_score_last_update']
        )

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
                return True
        except Exception:
            return False
