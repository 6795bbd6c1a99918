from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional

from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.record_validation import (
    is_count,
    name_errors,
    stat_value_errors,
    update_errors,
)
from guard.domain.models.patrol import (
    EffectSource,
    LastOrder,
    LastOrderAge,
    Patrol,
    PatrolEffect,
    PatrolOfficer,
    PatrolSoldier,
    classify_last_order_age,
)
from guard.domain.models.stats import StatModification, stats_from_mapping
from guard.domain.repositories import RecordKind
from guard.domain.results import MutationResult
from guard.domain.services.stat_derivation import StatBreakdown

logger = logging.getLogger(__name__)

# Patrol fields that feed the stat derivation; changing one re-derives the cache.
DERIVATION_INPUTS = frozenset({"base_stats", "custom_modifiers", "patrol_effects"})


class PatrolService:
    def __init__(
        self,
        lifecycle: LifecycleManager,
        *,
        order_warning_days: int = 7,
        order_danger_days: int = 30,
    ) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.order_warning_days = int(order_warning_days)
        self.order_danger_days = int(order_danger_days)

    def create(
        self,
        organization_id: str,
        name: str,
        *,
        subtitle: str = "",
        base_stats: Mapping[str, int] | None = None,
    ) -> MutationResult[Patrol]:
        return self.lifecycle.create_patrol(organization_id, name, subtitle=subtitle, base_stats=base_stats)

    def delete(self, patrol_id: str) -> MutationResult[Patrol]:
        return self.lifecycle.delete_patrol(patrol_id)

    def get(self, patrol_id: str) -> Optional[Patrol]:
        patrol = self.store.get(RecordKind.PATROL, patrol_id)
        return None if patrol is None else self._refresh(patrol)

    def get_all(self) -> List[Patrol]:
        return [self._refresh(patrol) for patrol in self.store.list_all(RecordKind.PATROL)]

    def list_for_organization(self, organization_id: str) -> List[Patrol]:
        return [
            self._refresh(patrol)
            for patrol in self.store.find_by_organization(RecordKind.PATROL, organization_id)
        ]

    def update(self, patrol_id: str, fields: Mapping[str, Any]) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        errors = update_errors(RecordKind.PATROL, fields, limit=self.lifecycle.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors), patrol)

        changes: Dict[str, Any] = {}
        base_stats = dict(patrol.base_stats)
        for path, value in fields.items():
            root, _, stat_name = str(path).partition(".")
            if root != "base_stats":
                changes[root] = value.strip() if root == "name" else value
            elif stat_name:
                base_stats[stat_name] = value
            else:
                base_stats = stats_from_mapping(value, limit=self.lifecycle.stat_limit)
        if any(str(path).split(".", 1)[0] == "base_stats" for path in fields):
            changes["base_stats"] = base_stats
        return self._write(patrol, changes)

    def assign_officer(
        self,
        patrol_id: str,
        actor_id: str,
        *,
        name: str = "",
        image: str = "",
        token_id: str | None = None,
        scene_id: str | None = None,
        is_linked: bool = True,
    ) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if not str(actor_id or "").strip():
            return MutationResult.invalid("officer actor id is required", patrol)
        officer = PatrolOfficer(
            actor_id=str(actor_id),
            name=str(name or ""),
            image=str(image or ""),
            token_id=token_id,
            scene_id=scene_id,
            is_linked=bool(is_linked),
        )
        return self._write(patrol, {"officer": officer})

    def clear_officer(self, patrol_id: str) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if patrol.officer is None:
            return MutationResult.accepted(patrol)
        return self._write(patrol, {"officer": None})

    def add_soldier(
        self,
        patrol_id: str,
        actor_id: str,
        *,
        name: str = "",
        image: str = "",
        token_id: str | None = None,
        scene_id: str | None = None,
        reference_type: str = "linked",
    ) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if not str(actor_id or "").strip():
            return MutationResult.invalid("soldier actor id is required", patrol)
        soldier = PatrolSoldier(
            actor_id=str(actor_id),
            name=str(name or ""),
            image=str(image or ""),
            token_id=token_id,
            scene_id=scene_id,
            reference_type=str(reference_type or "linked"),
            added_at=self.lifecycle.clock(),
        )
        # Duplicates are allowed: the same actor may fill several slots.
        return self._write(patrol, {"soldiers": [*patrol.soldiers, soldier]})

    def remove_soldier(self, patrol_id: str, actor_id: str) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        soldiers = list(patrol.soldiers)
        for index, soldier in enumerate(soldiers):
            if soldier.actor_id == actor_id:
                del soldiers[index]
                return self._write(patrol, {"soldiers": soldiers})
        return MutationResult.accepted(patrol)

    def add_effect(
        self,
        patrol_id: str,
        label: str,
        modifiers: Mapping[str, int],
        *,
        image: str = "",
        description: str = "",
        expires_at: int | None = None,
        duration_ms: int | None = None,
        source_type: EffectSource | str = EffectSource.MANUAL,
    ) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        errors = name_errors(label)
        for stat_name, value in (modifiers or {}).items():
            errors.extend(stat_value_errors(str(stat_name), value, limit=self.lifecycle.stat_limit))
        if expires_at is not None and not is_count(expires_at):
            errors.append("expires_at must be an integer timestamp in milliseconds")
        if duration_ms is not None and (not is_count(duration_ms) or duration_ms < 0):
            errors.append("duration_ms must be a non-negative integer")
        if expires_at is not None and duration_ms is not None:
            errors.append("give either expires_at or duration_ms, not both")
        try:
            source = EffectSource(source_type)
        except ValueError:
            errors.append(f"unknown effect source: {source_type}")
            source = EffectSource.MANUAL
        if errors:
            return MutationResult.invalid("; ".join(errors), patrol)

        if duration_ms is not None:
            expires_at = self.lifecycle.clock() + int(duration_ms)
        effect = PatrolEffect(
            id=uuid.uuid4().hex[:16],
            label=label.strip(),
            modifiers={str(k): int(v) for k, v in (modifiers or {}).items()},
            image=str(image or ""),
            description=str(description or ""),
            expires_at=expires_at,
            source_type=source,
        )
        return self._write(patrol, {"patrol_effects": [*patrol.patrol_effects, effect]})

    def remove_effect(self, patrol_id: str, effect_id: str) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if patrol.effect(effect_id) is None:
            return MutationResult.not_found("effect", effect_id)
        effects = [effect for effect in patrol.patrol_effects if effect.id != effect_id]
        return self._write(patrol, {"patrol_effects": effects})

    def purge_expired_effects(self, patrol_id: str) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        now = self.lifecycle.clock()
        effects = [effect for effect in patrol.patrol_effects if effect.is_active(now)]
        if len(effects) == len(patrol.patrol_effects):
            return MutationResult.accepted(patrol)
        logger.info("Purging %d expired effects from patrol %s", len(patrol.patrol_effects) - len(effects), patrol_id)
        return self._write(patrol, {"patrol_effects": effects})

    def add_custom_modifier(self, patrol_id: str, stat_name: str, value: int) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        errors = stat_value_errors(str(stat_name or ""), value, limit=self.lifecycle.stat_limit)
        if errors:
            return MutationResult.invalid("; ".join(errors), patrol)
        modifier = StatModification(stat_name=str(stat_name).strip(), value=value)
        return self._write(patrol, {"custom_modifiers": [*patrol.custom_modifiers, modifier]})

    def remove_custom_modifier(self, patrol_id: str, index: int) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(patrol.custom_modifiers):
            return MutationResult.invalid(f"no custom modifier at index {index}", patrol)
        modifiers = list(patrol.custom_modifiers)
        del modifiers[index]
        return self._write(patrol, {"custom_modifiers": modifiers})

    def update_last_order(self, patrol_id: str, text: str) -> MutationResult[Patrol]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return MutationResult.not_found("patrol", patrol_id)
        if not isinstance(text, str) or not text.strip():
            return MutationResult.invalid("order text is required", patrol)
        order = LastOrder(text=text.strip(), issued_at=self.lifecycle.clock())
        return self._write(patrol, {"last_order": order})

    def last_order_age(self, patrol_id: str) -> Optional[LastOrderAge]:
        patrol = self.get(patrol_id)
        if patrol is None or patrol.last_order is None:
            return None
        return classify_last_order_age(
            patrol.last_order,
            self.lifecycle.clock(),
            warning_days=self.order_warning_days,
            danger_days=self.order_danger_days,
        )

    def stat_breakdown(self, patrol_id: str) -> Optional[Dict[str, StatBreakdown]]:
        patrol = self.get(patrol_id)
        if patrol is None:
            return None
        return dict(self.lifecycle.derive_patrol_stats(patrol).breakdown)

    def _refresh(self, patrol: Patrol) -> Patrol:
        """Re-derive the cache once an effect has expired since the last write."""

        now = self.lifecycle.clock()
        if not any(not effect.is_active(now) for effect in patrol.patrol_effects):
            return patrol
        result = self.lifecycle.recompute_patrol(patrol.id)
        return result.record if result.ok else patrol

    def _write(self, patrol: Patrol, changes: Mapping[str, Any]) -> MutationResult[Patrol]:
        fields: Dict[str, Any] = dict(changes)
        if DERIVATION_INPUTS.intersection(changes):
            candidate = replace(patrol, **dict(changes))
            fields["derived_stats"] = self.lifecycle.derive_patrol_stats(candidate).values
        fields["version"] = patrol.version + 1
        updated = self.store.update(RecordKind.PATROL, patrol.id, fields)
        return MutationResult.accepted(updated)
