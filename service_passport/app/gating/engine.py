"""
Score gating engine for the Passport service.
"""

import math
from datetime import datetime
from typing import Callable, Optional

from shared.logging import get_logger
from shared.errors import AccessLayerException, InvalidResponse, ProviderUnavailable
from shared.metrics import MetricsCollector
from .bypass import BypassWindow, utcnow
from .identity import IdentityResolver, SIWE_PROVIDER
from .models import (
    ActionKind, Decision, DecisionReason, ForumUser, Scope, USER_LEVEL
)
from .requirements import RequirementStore


class GatingEngine:
    """Decides whether users may create accounts, reply and start topics.

    Decisions read only the requirement store, the bypass window and cached
    scores. The scoring provider is called from ``can_create_account`` and
    ``refresh_score`` only.
    """

    def __init__(
        self,
        provider,
        cache,
        requirements: RequirementStore,
        bypass: BypassWindow,
        users=None,
        resolver: Optional[IdentityResolver] = None,
        enabled: bool = False,
        scorer_id: Optional[str] = None,
        create_account_min_score: float = 0.0,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.logger = get_logger("passport.engine")
        self.provider = provider
        self.cache = cache
        self.requirements = requirements
        self.bypass = bypass
        self.users = users
        self.resolver = resolver or IdentityResolver()
        self.enabled = enabled
        self.scorer_id = scorer_id
        self.create_account_min_score = create_account_min_score
        self.clock = clock
        self.metrics = metrics

    def account_threshold(self) -> float:
        """Minimum score to create an account; a stored requirement overrides configuration."""
        requirement = self.requirements.find(USER_LEVEL, ActionKind.CREATE_ACCOUNT)
        if requirement is not None:
            return requirement.required_score
        return self.create_account_min_score

    async def can_create_account(self, identity: Optional[str]) -> Decision:
        """Check an account creation, fetching the score live.

        Provider failures propagate to the caller.
        """
        threshold = self.account_threshold()
        if not self.enabled or not self.scorer_id or threshold <= 0:
            return Decision(allowed=True, reason=DecisionReason.FEATURE_DISABLED)

        if not identity:
            self.logger.info("Account creation without a linked wallet")
            self._record(ActionKind.CREATE_ACCOUNT, False)
            return Decision(
                allowed=False,
                reason=DecisionReason.WALLET_NOT_LINKED,
                required_score=threshold
            )

        score = await self.provider.fetch_score(identity.lower(), self.scorer_id)

        if math.floor(score) < threshold:
            self.logger.info(
                "Account creation below minimum score",
                address=identity,
                score=score,
                required_score=threshold
            )
            self._record(ActionKind.CREATE_ACCOUNT, False)
            return Decision(
                allowed=False,
                reason=DecisionReason.SCORE_TOO_LOW,
                score=score,
                required_score=threshold
            )

        self._record(ActionKind.CREATE_ACCOUNT, True)
        return Decision(
            allowed=True,
            reason=DecisionReason.SCORE_SATISFIED,
            score=score,
            required_score=threshold
        )

    async def refresh_score(self, user: ForumUser) -> float:
        """Fetch the user's score and store it in the cache and on the user record."""
        identity = self.resolver.resolve_user(user)
        if identity is None:
            self.logger.info("User has no linked wallet, skipping refresh", username=user.username)
            return 0.0

        if not self.scorer_id:
            raise AccessLayerException("SCORER_NOT_CONFIGURED", "No passport scorer configured")

        try:
            score = await self.provider.fetch_score(identity, self.scorer_id)
        except (ProviderUnavailable, InvalidResponse):
            if self.metrics is not None:
                self.metrics.increment_counter("score_refresh_total", status="error")
            raise

        fetched_at = self.clock()
        await self.cache.put(identity, score, fetched_at)
        if self.users is not None and not await self.users.save_user_score(user.id, score, fetched_at):
            self.logger.debug("Ignoring out-of-order score write", username=user.username, user_id=user.id)
            stored = await self.users.get_user(user.id)
            if stored is not None and stored.passport_score is not None:
                score = stored.passport_score
                fetched_at = stored.passport_score_last_update
        user.passport_score = score
        user.passport_score_last_update = fetched_at

        if self.metrics is not None:
            self.metrics.increment_counter("score_refresh_total", status="ok")
        self.logger.info("Passport score refreshed", username=user.username, score=score)
        return score

    async def cached_score(self, user: ForumUser) -> float:
        """Last known score: the user record, then the cache, then 0."""
        if user.passport_score is not None:
            return user.passport_score

        identity = self.resolver.resolve_user(user)
        if identity is not None:
            record = await self.cache.get(identity)
            if record is not None:
                return record.score

        return 0.0

    async def has_minimum_required_score(self, user: ForumUser, scope: Scope, action: ActionKind) -> bool:
        """Whether the user's cached score meets the requirement for (scope, action)."""
        if not self.enabled or not self.bypass.is_expired():
            return True

        required = self.requirements.get_requirement(scope, action)
        if required <= 0:
            return True

        score = await self.cached_score(user)
        allowed = score >= required
        if not allowed:
            self.logger.info(
                "Minimum score not met",
                username=user.username,
                scope=str(scope),
                action=ActionKind(action).value,
                score=score,
                required_score=required
            )
        return allowed

    async def meets_requirements(self, user: ForumUser, action: ActionKind,
                                 category_id: Optional[int] = None) -> bool:
        """Check the forum-wide requirement and, when given, the category's."""
        allowed = await self.has_minimum_required_score(user, USER_LEVEL, action)
        if allowed and category_id is not None:
            allowed = await self.has_minimum_required_score(user, category_id, action)
        self._record(action, allowed)
        return allowed

    async def after_authenticate(self, provider: str, uid: str) -> Optional[float]:
        """Refresh the score of the user associated with a login, if any.

        Provider failures are logged and never block the login.
        """
        if self.users is None:
            return None

        user = await self.users.find_user_by_account(provider, uid)
        if user is None:
            return None

        return await self._refresh_quietly(user)

    async def after_create_account(self, user: ForumUser, identity: str) -> Optional[float]:
        """Score a just-created account using the address it signed up with."""
        if not self.enabled:
            return None

        if not any(a.get("name") == SIWE_PROVIDER for a in user.associated_accounts):
            user.associated_accounts.append({"name": SIWE_PROVIDER, "description": identity})

        self.logger.info("Refreshing score for new account", username=user.username, address=identity)
        return await self._refresh_quietly(user)

    async def _refresh_quietly(self, user: ForumUser) -> Optional[float]:
        try:
            return await self.refresh_score(user)
        except AccessLayerException as e:
            self.logger.warning(
                "Score refresh skipped",
                username=user.username,
                code=e.code,
                error=str(e)
            )
            return None

    def _record(self, action: ActionKind, allowed: bool):
        if self.metrics is not None:
            self.metrics.record_decision(ActionKind(action).value, allowed)
