"""
Passport gating service.
"""

import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, Header

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthorizationError, InvalidResponse, NotFoundError, ProviderUnavailable
from shared.logging import set_user_context

from .adapters.passport_client import PassportClient
from .cache.redis_cache import RedisScoreCache
from .cache.score_cache import is_stale
from .gating.bypass import BypassWindow, utcnow
from .gating.engine import GatingEngine
from .gating.identity import identity_from_session, identity_from_user
from .gating.models import (
    AccountCreatedHookRequest, ActionKind, AuthenticatedHookRequest, CategoryScoreRequest,
    CreateAccountRequest, CreateAccountResponse, Decision, DecisionReason, ForumUser,
    GatingCheckRequest, GatingCheckResponse, MinimumScoresResponse, RefreshScoreRequest,
    RefreshScoreResponse, RequirementResponse, Scope, ScoreRecord, USER_LEVEL, UserScoreRequest,
    UserScoreResponse
)
from .gating.requirements import RequirementStore
from .persistence.postgres import PostgreSQLPersistence


class PassportService(BaseService):
    """Passport gating service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None, provider=None, cache=None,
                 persistence=None, users=None, clock=utcnow):
        super().__init__("passport", 8013, config)

        self.persistence = persistence if persistence is not None else PostgreSQLPersistence(self.config.postgres_dsn)
        self.users = users if users is not None else self.persistence
        self.cache = cache if cache is not None else RedisScoreCache(self.config.redis_url)
        self.provider = provider if provider is not None else PassportClient(
            self.config.api_url,
            api_key=self.config.api_key,
            timeout=self.config.timeout_seconds,
            metrics=self.metrics
        )
        self.requirements = RequirementStore(self.persistence)
        self.bypass = BypassWindow.from_config(
            self.config.bypass_window_start,
            self.config.bypass_window_days,
            clock=clock
        )
        self.engine = GatingEngine(
            provider=self.provider,
            cache=self.cache,
            requirements=self.requirements,
            bypass=self.bypass,
            users=self.users,
            enabled=self.config.enabled,
            scorer_id=self.config.scorer_id,
            create_account_min_score=self.config.create_account_min_score,
            clock=clock,
            metrics=self.metrics
        )
        self.clock = clock

        self._setup_passport_routes()

    def _require_admin(self):
        config = self.config

        async def require_admin(x_admin_key: Optional[str] = Header(None)):
            if config.admin_api_key is None:
                if config.env == "local":
                    return
                raise AuthorizationError("Admin API key not configured")
            if not x_admin_key or not secrets.compare_digest(x_admin_key, config.admin_api_key):
                raise AuthorizationError("Admin privileges required")

        return Depends(require_admin)

    async def _get_user(self, user_id: int) -> ForumUser:
        set_user_context(str(user_id))
        user = await self.users.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
        return user

    def _minimum_scores(self, scope: Scope) -> MinimumScoresResponse:
        return MinimumScoresResponse(
            min_score_to_post=self.requirements.get_requirement(scope, ActionKind.REPLY),
            min_score_to_create_topic=self.requirements.get_requirement(scope, ActionKind.NEW_TOPIC)
        )

    def _setup_passport_routes(self):
        """Set up passport-specific routes."""
        admin = self._require_admin()

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "passport",
                "message": "Gitcoin Passport score gating",
                "version": "1.0.0",
                "enabled": self.config.enabled,
                "gating_enforced": self.bypass.is_expired()
            }

        @self.app.put("/passport/saveUserScore", response_model=RequirementResponse, dependencies=[admin])
        async def save_user_score(request: UserScoreRequest):
            """Set the forum-wide minimum score for an action."""
            requirement = await self.requirements.set_requirement(
                USER_LEVEL, request.action, request.required_score
            )
            return RequirementResponse(
                scope=USER_LEVEL.value,
                action=requirement.action,
                required_score=requirement.required_score
            )

        @self.app.put("/passport/saveCategoryScore", response_model=RequirementResponse, dependencies=[admin])
        async def save_category_score(request: CategoryScoreRequest):
            """Set a category's minimum score for an action."""
            requirement = await self.requirements.set_requirement(
                request.category_id, request.action, request.required_score
            )
            return RequirementResponse(
                scope=str(request.category_id),
                action=requirement.action,
                required_score=requirement.required_score
            )

        @self.app.put("/passport/refreshPassportScore", response_model=RefreshScoreResponse,
                      dependencies=[admin])
        async def refresh_passport_score(request: RefreshScoreRequest):
            """Refresh a user's score from the scorer API."""
            user = await self._get_user(request.user_id)
            score = await self.engine.refresh_score(user)
            return RefreshScoreResponse(user_id=user.id, score=score)

        @self.app.get("/passport/requirements", response_model=MinimumScoresResponse)
        async def get_user_level_requirements():
            """Forum-wide minimum scores."""
            return self._minimum_scores(USER_LEVEL)

        @self.app.get("/passport/categories/{category_id}/requirements", response_model=MinimumScoresResponse)
        async def get_category_requirements(category_id: int):
            """Minimum scores for a category."""
            return self._minimum_scores(category_id)

        @self.app.get("/passport/users/{user_id}", response_model=UserScoreResponse)
        async def get_user_score(user_id: int):
            """Passport fields for a user."""
            user = await self._get_user(user_id)
            identity = identity_from_user(user)
            stale = False
            max_age = self.config.score_max_age_seconds
            if max_age:
                if user.passport_score_last_update is not None:
                    record = ScoreRecord(
                        identity=identity or "",
                        score=user.passport_score or 0.0,
                        fetched_at=user.passport_score_last_update
                    )
                else:
                    record = await self.cache.get(identity) if identity else None
                if record is not None:
                    stale = is_stale(record, timedelta(seconds=max_age), self.clock())
            return UserScoreResponse(
                user_id=user.id,
                ethaddress=identity,
                passport_score=user.passport_score,
                passport_score_last_update=user.passport_score_last_update,
                stale=stale
            )

        @self.app.post("/passport/accounts/check", response_model=CreateAccountResponse, dependencies=[admin])
        async def check_account_creation(request: CreateAccountRequest):
            """Decide whether an in-flight sign-up may create an account."""
            identity = identity_from_session(request.session)
            try:
                decision = await self.engine.can_create_account(identity)
            except (ProviderUnavailable, InvalidResponse) as e:
                self.logger.warning(
                    "Scoring provider failed during account creation",
                    username=request.username,
                    code=e.code,
                    error=e.message
                )
                decision = Decision(
                    allowed=False,
                    reason=DecisionReason.PROVIDER_ERROR,
                    required_score=self.engine.account_threshold()
                )

            if decision.reason == DecisionReason.WALLET_NOT_LINKED:
                self.logger.info("Sign-up has no Ethereum address", username=request.username)

            return CreateAccountResponse(
                success=decision.allowed,
                message=decision.message,
                reason=decision.reason,
                score=decision.score,
                required_score=decision.required_score
            )

        @self.app.post("/passport/check", response_model=GatingCheckResponse, dependencies=[admin])
        async def check_action(request: GatingCheckRequest):
            """Decide whether a user meets the minimum score for an action."""
            user = await self._get_user(request.user_id)
            allowed = await self.engine.meets_requirements(user, request.action, request.category_id)
            return GatingCheckResponse(
                allowed=allowed,
                action=request.action,
                category_id=request.category_id
            )

        @self.app.post("/passport/hooks/authenticated", dependencies=[admin])
        async def on_authenticated(request: AuthenticatedHookRequest):
            """Login association event; refreshes the associated user's score."""
            score = await self.engine.after_authenticate(request.provider, request.uid)
            return {"refreshed": score is not None, "score": score}

        @self.app.post("/passport/hooks/account-created", dependencies=[admin])
        async def on_account_created(request: AccountCreatedHookRequest):
            """New account event; scores the account's wallet."""
            user = await self._get_user(request.user_id)
            score = await self.engine.after_create_account(user, request.ethaddress)
            return {"refreshed": score is not None, "score": score}

        @self.app.get("/passport/stats", dependencies=[admin])
        async def get_stats():
            """Get passport service statistics."""
            requirements = self.requirements.list_requirements()
            persistence_stats = {}
            if isinstance(self.persistence, PostgreSQLPersistence):
                persistence_stats = await self.persistence.get_requirement_stats()
            return {
                "requirements": len(requirements),
                "active_requirements": len([r for r in requirements if r.required_score > 0]),
                "bypass_until": self.bypass.enabled_until.isoformat() if self.bypass.enabled_until else None,
                "gating_enforced": self.bypass.is_expired(),
                "persistence": persistence_stats,
                "timestamp": datetime.now().isoformat()
            }

    async def _check_dependencies(self):
        """Check passport service dependencies."""
        dependencies = {}

        try:
            dependencies["redis"] = "ok" if await self.cache.health_check() else "error"
        except Exception:
            dependencies["redis"] = "error"

        try:
            dependencies["postgres"] = "ok" if await self.persistence.health_check() else "error"
        except Exception:
            dependencies["postgres"] = "error"

        return dependencies

    async def start(self):
        """Start passport service components."""
        await self.persistence.start()
        await self.cache.start()

        count = await self.requirements.load()
        self.logger.info(f"Passport service started with {count} requirements")

    async def stop(self):
        """Stop passport service components."""
        await self.persistence.stop()
        await self.cache.stop()

        self.logger.info("Passport service stopped")


def create_app():
    """Create passport service application."""
    service = PassportService()
    return service.app


if __name__ == "__main__":
    service = PassportService()
    service.run()
