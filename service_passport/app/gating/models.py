"""
Gating data models for the Passport service.
"""

from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .bypass import utcnow
from .validators import normalize_address


class ActionKind(str, Enum):
    """Gated user actions."""
    CREATE_ACCOUNT = "create_account"
    REPLY = "reply"
    NEW_TOPIC = "new_topic"


class UserLevel(str, Enum):
    """Forum-wide scope marker."""
    USER_LEVEL = "user_level"


USER_LEVEL = UserLevel.USER_LEVEL

# A scope is either forum-wide or a category id
Scope = Union[UserLevel, int]


class DecisionReason(str, Enum):
    """Why a decision came out the way it did."""
    FEATURE_DISABLED = "feature_disabled"
    SCORE_SATISFIED = "score_satisfied"
    SCORE_TOO_LOW = "score_too_low"
    WALLET_NOT_LINKED = "wallet_not_linked"
    PROVIDER_ERROR = "provider_error"


MESSAGES = {
    DecisionReason.WALLET_NOT_LINKED: (
        "Please connect your Ethereum wallet to create an account."
    ),
    DecisionReason.SCORE_TOO_LOW: (
        "Your Gitcoin Passport score is {score}. A minimum score of "
        "{required_score} is required to create an account."
    ),
    DecisionReason.PROVIDER_ERROR: (
        "We could not verify your Gitcoin Passport score right now. Please try again later."
    ),
}


@dataclass(frozen=True)
class ScoreRecord:
    """Last known score for an identity."""
    identity: str
    score: float
    fetched_at: datetime


@dataclass(frozen=True)
class Requirement:
    """Minimum score needed for an action within a scope."""
    scope: Scope
    action: ActionKind
    required_score: float
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class Decision:
    """Result of a gating check."""
    allowed: bool
    reason: DecisionReason
    score: Optional[float] = None
    required_score: float = 0.0

    @property
    def message(self) -> Optional[str]:
        template = MESSAGES.get(self.reason)
        if template is None:
            return None
        return template.format(score=self.score, required_score=self.required_score)


@dataclass
class ForumUser:
    """Host user record as seen by the gating engine.

    ``passport_score`` and ``passport_score_last_update`` mirror the score
    cache and are what the host shows on profiles.
    """
    id: int
    username: str
    associated_accounts: List[Dict[str, Any]] = field(default_factory=list)
    passport_score: Optional[float] = None
    passport_score_last_update: Optional[datetime] = None


@dataclass(frozen=True)
class Category:
    id: int
    name: Optional[str] = None


@dataclass(frozen=True)
class Topic:
    id: int
    category_id: Optional[int] = None


# API models

class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


GATEABLE_ACTIONS = (ActionKind.REPLY, ActionKind.NEW_TOPIC)


def _only_gateable(value: ActionKind) -> ActionKind:
    if value not in GATEABLE_ACTIONS:
        raise ValueError("action must be one of: reply, new_topic")
    return value


class UserScoreRequest(_CamelModel):
    """Request model for the forum-wide requirement."""
    required_score: float = Field(..., ge=0, alias="requiredScore", description="Minimum score")
    action: ActionKind = Field(..., description="Gated action")

    validate_action = field_validator("action")(_only_gateable)


class CategoryScoreRequest(_CamelModel):
    """Request model for a per-category requirement."""
    category_id: int = Field(..., ge=1, alias="categoryId", description="Category ID")
    required_score: float = Field(..., ge=0, alias="requiredScore", description="Minimum score")
    action: ActionKind = Field(..., description="Gated action")

    validate_action = field_validator("action")(_only_gateable)


class RefreshScoreRequest(_CamelModel):
    """Request model for an explicit score refresh."""
    user_id: int = Field(..., alias="userId", description="Forum user ID")


class RequirementResponse(BaseModel):
    """Response model for requirement writes."""
    success: bool = True
    scope: str
    action: ActionKind
    required_score: float


class MinimumScoresResponse(BaseModel):
    """Requirements for a scope, as shown to users."""
    min_score_to_post: float = 0.0
    min_score_to_create_topic: float = 0.0


class RefreshScoreResponse(BaseModel):
    success: bool = True
    user_id: int
    score: float


class UserScoreResponse(BaseModel):
    """Passport fields exposed for the current user."""
    user_id: int
    ethaddress: Optional[str]
    passport_score: Optional[float]
    passport_score_last_update: Optional[datetime]
    stale: bool = False


class CreateAccountRequest(_CamelModel):
    """Account creation check, carrying the in-flight auth session."""
    username: str = Field(..., min_length=1)
    session: Dict[str, Any] = Field(default_factory=dict)


class CreateAccountResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    reason: DecisionReason
    score: Optional[float] = None
    required_score: float = 0.0


class GatingCheckRequest(_CamelModel):
    """Decision request issued by the host guardian."""
    user_id: int = Field(..., alias="userId")
    action: ActionKind
    category_id: Optional[int] = Field(None, alias="categoryId")

    validate_action = field_validator("action")(_only_gateable)


class GatingCheckResponse(BaseModel):
    allowed: bool
    action: ActionKind
    category_id: Optional[int] = None


class AuthenticatedHookRequest(_CamelModel):
    """Login association event from the host's authenticator."""
    provider: str = Field("siwe")
    uid: str = Field(..., min_length=1)

    @field_validator("uid")
    @classmethod
    def _normalize_uid(cls, value: str) -> str:
        return normalize_address(value)


class AccountCreatedHookRequest(_CamelModel):
    """New account event from the host's authenticator."""
    user_id: int = Field(..., alias="userId")
    username: str
    ethaddress: str

    @field_validator("ethaddress")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        return normalize_address(value)
