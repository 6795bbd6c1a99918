"""Layered stat derivation for patrols.

A patrol's effective value for a statistic is its base value plus every
custom modifier, active patrol effect and active organization modifier that
names the statistic. The breakdown keeps each contribution so the displayed
parts always add up to the total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, Mapping, Sequence, Tuple

from guard.domain.models.organization import GuardModifier
from guard.domain.models.patrol import PatrolEffect
from guard.domain.models.stats import StatModification

CUSTOM_MODIFIER_LABEL = "Custom modifier"


@dataclass(frozen=True)
class StatContribution:
    source_label: str
    source_image: str
    value: int

    def to_dict(self) -> dict[str, object]:
        return {"source_label": self.source_label, "source_image": self.source_image, "value": self.value}


@dataclass(frozen=True)
class StatBreakdown:
    base: int
    effects: Tuple[StatContribution, ...] = ()
    org: Tuple[StatContribution, ...] = ()

    @property
    def effects_total(self) -> int:
        return sum(item.value for item in self.effects)

    @property
    def org_total(self) -> int:
        return sum(item.value for item in self.org)

    @property
    def total(self) -> int:
        return self.base + self.effects_total + self.org_total

    def to_dict(self) -> dict[str, object]:
        return {
            "base": self.base,
            "effects": self.effects_total,
            "effect_sources": [item.to_dict() for item in self.effects],
            "org": self.org_total,
            "org_sources": [item.to_dict() for item in self.org],
            "total": self.total,
        }


@dataclass(frozen=True)
class DerivedStats:
    breakdown: Mapping[str, StatBreakdown] = field(default_factory=dict)

    @property
    def values(self) -> Dict[str, int]:
        return {name: item.total for name, item in self.breakdown.items()}

    def __getitem__(self, stat_name: str) -> StatBreakdown:
        return self.breakdown[stat_name]


class StatDerivationEngine:
    """Pure function object; holds no state between calls."""

    def derive(
        self,
        *,
        patrol_base: Mapping[str, int],
        organization_base: Mapping[str, int] | None = None,
        organization_modifiers: Sequence[GuardModifier] = (),
        custom_modifiers: Sequence[StatModification] = (),
        effects: Sequence[PatrolEffect] = (),
        now_ms: int = 0,
    ) -> DerivedStats:
        # Services always store a full stat block; an empty one only reaches here
        # from direct callers, and then the organization base is used.
        base = dict(patrol_base) if patrol_base else dict(organization_base or {})
        active_effects = [effect for effect in effects if effect.is_active(now_ms)]

        breakdown: Dict[str, StatBreakdown] = {}
        for stat_name, base_value in base.items():
            effect_parts = list(self._custom_contributions(stat_name, custom_modifiers))
            effect_parts.extend(self._effect_contributions(stat_name, active_effects))
            org_parts = tuple(self._organization_contributions(stat_name, organization_modifiers))
            breakdown[stat_name] = StatBreakdown(
                base=int(base_value),
                effects=tuple(effect_parts),
                org=org_parts,
            )
        return DerivedStats(breakdown=breakdown)

    def organization_effective_stats(
        self,
        organization_base: Mapping[str, int],
        organization_modifiers: Sequence[GuardModifier] = (),
    ) -> Dict[str, int]:
        effective: Dict[str, int] = {}
        for stat_name, base_value in organization_base.items():
            bonus = sum(modifier.total_for(stat_name) for modifier in organization_modifiers)
            effective[stat_name] = int(base_value) + int(bonus)
        return effective

    @staticmethod
    def _custom_contributions(stat_name: str, mods: Iterable[StatModification]) -> Iterable[StatContribution]:
        for mod in mods:
            if mod.stat_name == stat_name:
                yield StatContribution(CUSTOM_MODIFIER_LABEL, "", int(mod.value))

    @staticmethod
    def _effect_contributions(stat_name: str, effects: Iterable[PatrolEffect]) -> Iterable[StatContribution]:
        for effect in effects:
            if stat_name in effect.modifiers:
                yield StatContribution(effect.label, effect.image, int(effect.modifiers[stat_name]))

    @staticmethod
    def _organization_contributions(
        stat_name: str,
        modifiers: Iterable[GuardModifier],
    ) -> Iterable[StatContribution]:
        for modifier in modifiers:
            for mod in modifier.stat_modifications:
                if mod.stat_name == stat_name:
                    yield StatContribution(modifier.name, modifier.image, int(mod.value))
