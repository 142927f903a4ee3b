"""
Reference data: worker categories, project stage template and the default
payment-milestone schedule.

These are immutable values handed to the services that need them, so a
caller (or a test) can swap in its own set without touching module state.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple

from ..errors import InvalidAmount, NotFound


@dataclass(frozen=True)
class WorkerCategory:
    key: str
    label: str
    default_rate: float
    custom: bool = False


@dataclass(frozen=True)
class WorkerCatalog:
    categories: Tuple[WorkerCategory, ...]

    def get(self, key: str) -> WorkerCategory:
        for cat in self.categories:
            if cat.key == key:
                return cat
        raise NotFound("Worker category", key)

    def find(self, key: str) -> Optional[WorkerCategory]:
        try:
            return self.get(key)
        except NotFound:
            return None

    def default_rate(self, key: str) -> float:
        return self.get(key).default_rate

    def keys(self) -> Tuple[str, ...]:
        return tuple(c.key for c in self.categories)

    def with_custom(self, extra: Iterable[WorkerCategory]) -> "WorkerCatalog":
        """New catalog with custom categories appended; a custom key never shadows a built-in one."""
        known = set(self.keys())
        added = tuple(c for c in extra if c.key not in known)
        return WorkerCatalog(categories=self.categories + added)


def default_worker_catalog() -> WorkerCatalog:
    return WorkerCatalog(categories=(
        WorkerCategory("HELPER_MALE", "Helper (Male)", 500.0),
        WorkerCategory("HELPER_FEMALE", "Helper (Female)", 400.0),
        WorkerCategory("MASON", "Mason", 800.0),
        WorkerCategory("LABOUR", "Labour", 500.0),
        WorkerCategory("CIVIL_MANAGER", "Civil Manager", 1500.0),
        WorkerCategory("BAR_BENDER", "Bar Bender", 900.0),
        WorkerCategory("ELECTRICIAN", "Electrician", 800.0),
        WorkerCategory("PLUMBER", "Plumber", 800.0),
        WorkerCategory("CARPENTER", "Carpenter", 700.0),
        WorkerCategory("GRILL_WORKER", "Grill Worker", 700.0),
        WorkerCategory("TILE_WORKER", "Tile Worker", 800.0),
        WorkerCategory("PAINTER", "Painter", 700.0),
    ))


@dataclass(frozen=True)
class StageTemplate:
    names: Tuple[str, ...]

    def as_stages(self) -> list:
        """Fresh mutable stage list for a new project."""
        return [{"name": n, "status": "PENDING", "progress": 0} for n in self.names]


def default_stage_template() -> StageTemplate:
    return StageTemplate(names=(
        "Site Preparation",
        "Foundation",
        "Structure/Framing",
        "Roofing",
        "Electrical & Plumbing",
        "Interior Finishing",
        "Painting",
        "Final Inspection",
        "Handover",
    ))


@dataclass(frozen=True)
class MilestoneShare:
    stage_name: str
    percentage: float
    due_date: Optional[date] = None


@dataclass(frozen=True)
class MilestoneSchedule:
    shares: Tuple[MilestoneShare, ...]

    def __post_init__(self):
        total = 0.0
        for share in self.shares:
            if not (0 < share.percentage <= 100):
                raise InvalidAmount("percentage", share.percentage, f"percentage for {share.stage_name!r} must be in (0, 100]")
            total += share.percentage
        if total > 100 + 1e-9:
            raise InvalidAmount("percentage", total, "milestone percentages must not exceed 100 in total")

    def amounts_for(self, budget: float) -> List[Tuple[MilestoneShare, float]]:
        """Each share with its amount of ``budget``, in schedule order."""
        return [(s, budget * s.percentage / 100) for s in self.shares]


def default_milestone_schedule() -> MilestoneSchedule:
    return MilestoneSchedule(shares=(
        MilestoneShare("Advance Payment", 20),
        MilestoneShare("Foundation Complete", 25),
        MilestoneShare("Structure Complete", 30),
        MilestoneShare("Finishing Complete", 15),
        MilestoneShare("Final Handover", 10),
    ))


@dataclass(frozen=True)
class Catalog:
    """Bundle of reference data injected into the services"""
    workers: WorkerCatalog = field(default_factory=default_worker_catalog)
    stages: StageTemplate = field(default_factory=default_stage_template)
    milestones: MilestoneSchedule = field(default_factory=default_milestone_schedule)


def get_catalog() -> Catalog:
    """FastAPI dependency; override in tests to inject custom reference data."""
    return Catalog()
