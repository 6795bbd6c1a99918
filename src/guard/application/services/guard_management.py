from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from guard.application.dtos import OrganizationSummaryView
from guard.application.mappers.summary_mapper import (
    to_organization_summary_view,
    to_patrol_summary_view,
    to_reputation_view,
    to_resource_view,
)
from guard.application.services.event_bus import EventBus
from guard.application.services.lifecycle_manager import LifecycleManager
from guard.application.services.modifier_service import ModifierService
from guard.application.services.patrol_service import PatrolService
from guard.application.services.reputation_service import ReputationService
from guard.application.services.resource_service import ResourceService
from guard.domain.repositories import RecordStore


@dataclass
class GuardManagement:
    """Everything built by the bootstrap, handed to callers as one object."""

    store: RecordStore
    event_bus: EventBus
    lifecycle: LifecycleManager
    patrols: PatrolService
    resources: ResourceService
    reputation: ReputationService
    modifiers: ModifierService

    def organization_summary(self, organization_id: str) -> Optional[OrganizationSummaryView]:
        organization = self.lifecycle.get_organization(organization_id)
        if organization is None:
            return None
        patrol_views = []
        for patrol_id in organization.patrols:
            patrol = self.patrols.get(patrol_id)
            if patrol is None:
                continue
            patrol_views.append(
                to_patrol_summary_view(
                    patrol,
                    breakdown=self.patrols.stat_breakdown(patrol_id) or {},
                    last_order_age=self.patrols.last_order_age(patrol_id),
                )
            )
        resource_views = [
            to_resource_view(row, low_threshold=self.resources.low_threshold)
            for row in (self.resources.get(ref) for ref in organization.resources)
            if row is not None
        ]
        reputation_views = [
            to_reputation_view(row)
            for row in (self.reputation.get(ref) for ref in organization.reputation)
            if row is not None
        ]
        return to_organization_summary_view(
            organization,
            effective_stats=self.lifecycle.organization_effective_stats(organization_id) or {},
            modifiers=self.lifecycle.organization_modifiers(organization),
            patrols=patrol_views,
            resources=resource_views,
            reputation=reputation_views,
        )

    def summaries(self) -> List[OrganizationSummaryView]:
        views = []
        for organization in self.lifecycle.list_organizations():
            view = self.organization_summary(organization.id)
            if view is not None:
                views.append(view)
        return views
