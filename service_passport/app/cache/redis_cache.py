"""
Redis-backed score cache for the Passport service.
"""

from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import AccessLayerException
from ..gating.models import ScoreRecord

# Writes score and timestamp together, skipping writes older than the stored one
UPSERT_SCORE_SCRIPT = """
local current = redis.call('HGET', KEYS[1], 'fetched_at')
if current and tonumber(current) > tonumber(ARGV[2]) then
    return 0
end
redis.call('HSET', KEYS[1], 'score', ARGV[1], 'fetched_at', ARGV[2])
return 1
"""


class RedisScoreCache:
    """Redis score cache; one hash per identity."""

    SCORE_PREFIX = "passport:score:"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("passport.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Start the Redis cache."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis score cache started")

        except Exception as e:
            self.logger.error("Failed to start Redis score cache", error=str(e))
            raise AccessLayerException("REDIS_START_FAILED", str(e))

    async def stop(self):
        """Stop the Redis cache."""
        if self.redis:
            await self.redis.close()
            self.logger.info("Redis score cache stopped")

    async def get(self, identity: str) -> Optional[ScoreRecord]:
        """Get the cached score record for an identity."""
        key = self._key(identity)
        data = await self.redis.hgetall(key)
        if not data:
            return None

        try:
            return ScoreRecord(
                identity=identity.lower(),
                score=float(data["score"]),
                fetched_at=datetime.fromtimestamp(float(data["fetched_at"]), tz=timezone.utc)
            )
        except (KeyError, ValueError) as e:
            self.logger.warning("Discarding malformed score record", cache_key=key, error=str(e))
            return None

    async def put(self, identity: str, score: float, fetched_at: datetime) -> bool:
        """Upsert a score record."""
        key = self._key(identity)
        written = await self.redis.eval(
            UPSERT_SCORE_SCRIPT,
            1,
            key,
            repr(float(score)),
            repr(fetched_at.timestamp())
        )
        if not written:
            self.logger.debug("Ignoring out-of-order score write", cache_key=key)
            return False

        self.logger.debug("Cached score", cache_key=key, score=score)
        return True

    def _key(self, identity: str) -> str:
        return f"{self.SCORE_PREFIX}{identity.lower()}"

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False
