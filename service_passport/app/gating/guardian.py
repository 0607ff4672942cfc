"""
Score gating layered over the host forum's topic permissions.
"""

import inspect
from typing import Any, Callable, Optional

from shared.logging import get_logger
from .engine import GatingEngine
from .models import ActionKind, Category, ForumUser, Topic


async def _call_base(check: Callable[..., Any], *args) -> bool:
    result = check(*args)
    if inspect.isawaitable(result):
        result = await result
    return bool(result)


class GatedTopicGuardian:
    """Wraps the host's topic permission checks with minimum-score checks.

    The base checks are injected and are only consulted once the score
    check passes. They may be plain or async callables.
    """

    def __init__(
        self,
        engine: GatingEngine,
        user: ForumUser,
        can_create_post_on_topic: Callable[[Topic], Any],
        can_create_topic_on_category: Callable[[Category], Any],
        category_resolver: Optional[Callable[[Topic], Optional[int]]] = None,
    ):
        self.engine = engine
        self.user = user
        self.base_can_create_post_on_topic = can_create_post_on_topic
        self.base_can_create_topic_on_category = can_create_topic_on_category
        self.category_resolver = category_resolver or (lambda topic: topic.category_id)
        self.logger = get_logger("passport.guardian")

    async def can_create_post_on_topic(self, topic: Topic) -> bool:
        category_id = self.category_resolver(topic)
        if not await self.engine.meets_requirements(self.user, ActionKind.REPLY, category_id):
            self.logger.info(
                "User lacks minimum score to post on topic",
                username=self.user.username,
                topic_id=topic.id,
                category_id=category_id
            )
            return False
        return await _call_base(self.base_can_create_post_on_topic, topic)

    async def can_create_topic_on_category(self, category: Category) -> bool:
        if not await self.engine.meets_requirements(self.user, ActionKind.NEW_TOPIC, category.id):
            self.logger.info(
                "User lacks minimum score to create topic",
                username=self.user.username,
                category_id=category.id
            )
            return False
        return await _call_base(self.base_can_create_topic_on_category, category)
