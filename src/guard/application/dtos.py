from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class StatLineView:
    stat_name: str
    base: int
    effects: int
    org: int
    total: int
    sources: List[str] = field(default_factory=list)


@dataclass
class PatrolSummaryView:
    id: str
    name: str
    officer_name: str
    soldier_count: int
    effect_count: int
    stats: List[StatLineView] = field(default_factory=list)
    last_order: str = ""
    last_order_age: str = ""


@dataclass
class ResourceView:
    id: str
    name: str
    quantity: int
    is_low: bool


@dataclass
class ReputationView:
    id: str
    name: str
    faction: str
    level: int
    label: str
    modifier: int
    color: str


@dataclass
class OrganizationSummaryView:
    id: str
    name: str
    subtitle: str
    version: int
    base_stats: Dict[str, int] = field(default_factory=dict)
    effective_stats: Dict[str, int] = field(default_factory=dict)
    active_modifiers: List[str] = field(default_factory=list)
    patrols: List[PatrolSummaryView] = field(default_factory=list)
    resources: List[ResourceView] = field(default_factory=list)
    reputation: List[ReputationView] = field(default_factory=list)
