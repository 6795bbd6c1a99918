from __future__ import annotations

from typing import Mapping, Sequence

from guard.application.dtos import (
    OrganizationSummaryView,
    PatrolSummaryView,
    ReputationView,
    ResourceView,
    StatLineView,
)
from guard.domain.models.organization import GuardModifier, GuardOrganization
from guard.domain.models.patrol import LastOrderAge, Patrol
from guard.domain.models.reputation import Reputation
from guard.domain.models.resource import Resource
from guard.domain.services.stat_derivation import StatBreakdown


def to_stat_line_view(stat_name: str, breakdown: StatBreakdown) -> StatLineView:
    sources = [f"{item.source_label} {item.value:+d}" for item in (*breakdown.effects, *breakdown.org)]
    return StatLineView(
        stat_name=stat_name,
        base=breakdown.base,
        effects=breakdown.effects_total,
        org=breakdown.org_total,
        total=breakdown.total,
        sources=sources,
    )


def to_patrol_summary_view(
    patrol: Patrol,
    *,
    breakdown: Mapping[str, StatBreakdown],
    last_order_age: LastOrderAge | None = None,
) -> PatrolSummaryView:
    return PatrolSummaryView(
        id=patrol.id,
        name=patrol.name,
        officer_name=patrol.officer.name if patrol.officer is not None else "",
        soldier_count=len(patrol.soldiers),
        effect_count=len(patrol.patrol_effects),
        stats=[to_stat_line_view(name, item) for name, item in breakdown.items()],
        last_order=patrol.last_order.text if patrol.last_order is not None else "",
        last_order_age=last_order_age.value if last_order_age is not None else "",
    )


def to_resource_view(resource: Resource, *, low_threshold: int) -> ResourceView:
    return ResourceView(
        id=resource.id,
        name=resource.name,
        quantity=int(resource.quantity),
        is_low=resource.is_low(low_threshold),
    )


def to_reputation_view(reputation: Reputation) -> ReputationView:
    return ReputationView(
        id=reputation.id,
        name=reputation.name,
        faction=reputation.faction,
        level=int(reputation.level),
        label=reputation.label,
        modifier=reputation.modifier,
        color=reputation.color,
    )


def to_organization_summary_view(
    organization: GuardOrganization,
    *,
    effective_stats: Mapping[str, int],
    modifiers: Sequence[GuardModifier],
    patrols: Sequence[PatrolSummaryView],
    resources: Sequence[ResourceView],
    reputation: Sequence[ReputationView],
) -> OrganizationSummaryView:
    return OrganizationSummaryView(
        id=organization.id,
        name=organization.name,
        subtitle=organization.subtitle,
        version=organization.version,
        base_stats=dict(organization.base_stats),
        effective_stats=dict(effective_stats),
        active_modifiers=[modifier.name for modifier in modifiers],
        patrols=list(patrols),
        resources=list(resources),
        reputation=list(reputation),
    )
