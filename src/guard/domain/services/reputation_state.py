from __future__ import annotations

from dataclasses import replace

from guard.domain.models.reputation import MAX_LEVEL, MIN_LEVEL, Reputation
from guard.domain.results import MutationResult


class ReputationStateMachine:
    """Level transitions for a single reputation record.

    Each accepted transition returns a copy with the new level and the
    version bumped by one; declined transitions hand back the original.
    """

    def improve(self, reputation: Reputation) -> MutationResult[Reputation]:
        if int(reputation.level) >= MAX_LEVEL:
            return MutationResult.invalid("reputation is already at the highest level", reputation)
        return self._move_to(reputation, int(reputation.level) + 1)

    def worsen(self, reputation: Reputation) -> MutationResult[Reputation]:
        if int(reputation.level) <= MIN_LEVEL:
            return MutationResult.invalid("reputation is already at the lowest level", reputation)
        return self._move_to(reputation, int(reputation.level) - 1)

    def set_level(self, reputation: Reputation, level: int) -> MutationResult[Reputation]:
        if isinstance(level, bool) or not isinstance(level, int):
            return MutationResult.invalid("reputation level must be an integer", reputation)
        if level < MIN_LEVEL or level > MAX_LEVEL:
            return MutationResult.invalid(f"reputation level must be within [{MIN_LEVEL}, {MAX_LEVEL}]", reputation)
        return self._move_to(reputation, level)

    @staticmethod
    def _move_to(reputation: Reputation, level: int) -> MutationResult[Reputation]:
        return MutationResult.accepted(replace(reputation, level=int(level), version=int(reputation.version) + 1))
