"""
In-memory user directory, used for local runs and tests.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, Optional

from ..gating.models import ForumUser


class InMemoryUserDirectory:
    """Stores ``ForumUser`` records and their passport score mirror."""

    def __init__(self, users=None):
        self.users: Dict[int, ForumUser] = {}
        for user in users or []:
            self.add_user(user)

    def add_user(self, user: ForumUser) -> ForumUser:
        self.users[user.id] = user
        return user

    async def get_user(self, user_id: int) -> Optional[ForumUser]:
        return self.users.get(user_id)

    async def find_user_by_account(self, provider: str, uid: str) -> Optional[ForumUser]:
        uid = uid.lower()
        for user in self.users.values():
            for account in user.associated_accounts:
                if account.get("name") == provider and str(account.get("description", "")).lower() == uid:
                    return user
        return None

    async def save_user_score(self, user_id: int, score: float, fetched_at: datetime) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        last = user.passport_score_last_update
        if last is not None and last > fetched_at:
            return False
        # Swap in a new record so score and timestamp change together
        self.users[user_id] = replace(user, passport_score=float(score), passport_score_last_update=fetched_at)
        return True

    async def health_check(self) -> bool:
        return True
