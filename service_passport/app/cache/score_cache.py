"""
Score cache keyed by wallet address.
"""

from datetime import datetime, timedelta
from typing import Dict, Optional

from shared.logging import get_logger
from ..gating.models import ScoreRecord
from ..gating.bypass import utcnow


def is_stale(record: ScoreRecord, max_age: Optional[timedelta],
             now: Optional[datetime] = None) -> bool:
    """Whether ``record`` is older than ``max_age``. No max age means never stale."""
    if max_age is None:
        return False
    now = now or utcnow()
    return now - record.fetched_at > max_age


class ScoreCache:
    """In-process score cache.

    ``put`` is an upsert that refuses to move ``fetched_at`` backwards for an
    identity.
    """

    def __init__(self):
        self.logger = get_logger("passport.cache.memory")
        self._records: Dict[str, ScoreRecord] = {}

    async def start(self):
        pass

    async def stop(self):
        pass

    async def get(self, identity: str) -> Optional[ScoreRecord]:
        return self._records.get(identity.lower())

    async def put(self, identity: str, score: float, fetched_at: datetime) -> bool:
        key = identity.lower()
        current = self._records.get(key)
        if current is not None and current.fetched_at > fetched_at:
            self.logger.debug("Ignoring out-of-order score write", identity=key)
            return False
        self._records[key] = ScoreRecord(identity=key, score=float(score), fetched_at=fetched_at)
        return True

    async def health_check(self) -> bool:
        return True
