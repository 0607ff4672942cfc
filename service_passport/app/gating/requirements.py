"""
Minimum score requirements per (scope, action).
"""

from typing import Dict, List, Optional, Tuple

from shared.logging import get_logger
from .bypass import utcnow
from .models import ActionKind, Requirement, Scope


class RequirementStore:
    """In-memory requirement index, optionally backed by PostgreSQL.

    Records are immutable and replaced whole, so a concurrent reader sees
    either the old or the new requirement.
    """

    def __init__(self, persistence=None):
        self.logger = get_logger("passport.requirements")
        self.persistence = persistence
        self.requirements: Dict[Tuple[Scope, ActionKind], Requirement] = {}

    async def load(self) -> int:
        """Load persisted requirements into memory."""
        if self.persistence is None:
            return 0
        loaded = await self.persistence.load_all_requirements()
        for requirement in loaded:
            self.requirements[(requirement.scope, requirement.action)] = requirement
        return len(loaded)

    async def set_requirement(self, scope: Scope, action: ActionKind, required_score: float) -> Requirement:
        """Upsert the requirement for (scope, action)."""
        if required_score < 0:
            raise ValueError("required_score must be non-negative")

        requirement = Requirement(
            scope=scope,
            action=ActionKind(action),
            required_score=float(required_score),
            updated_at=utcnow()
        )

        if self.persistence is not None:
            await self.persistence.save_requirement(requirement)

        self.requirements[(scope, requirement.action)] = requirement
        self.logger.info(
            "Requirement saved",
            scope=str(scope),
            action=requirement.action.value,
            required_score=requirement.required_score
        )
        return requirement

    def get_requirement(self, scope: Scope, action: ActionKind) -> float:
        """Required score for (scope, action); 0 when none is configured."""
        requirement = self.requirements.get((scope, ActionKind(action)))
        if requirement is None:
            return 0.0
        return requirement.required_score

    def find(self, scope: Scope, action: ActionKind) -> Optional[Requirement]:
        return self.requirements.get((scope, ActionKind(action)))

    def list_requirements(self) -> List[Requirement]:
        return list(self.requirements.values())
