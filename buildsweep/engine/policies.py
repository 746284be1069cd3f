"""Eviction policies: age cutoff, toolchain membership and size budget.

Each policy looks at the grouped units and returns one ``EvictionDecision``
per group. Policies never touch the filesystem.
"""
from __future__ import annotations
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterable, Protocol

from .errors import InvalidBudget, InvalidCutoff
from .grouper import ArtifactGroup
from .units import format_bytes, parse_duration


@dataclass(frozen=True)
class EvictionDecision:
    group: ArtifactGroup
    remove: bool
    policy: str
    reason: str = ""

    @property
    def total_size(self) -> int:
        return self.group.total_size

    @property
    def verdict(self) -> str:
        return "remove" if self.remove else "keep"


class EvictionPolicy(Protocol):
    name: str

    def evaluate(self, groups: Iterable[ArtifactGroup]) -> list[EvictionDecision]: ...


def _ordered(groups: Iterable[ArtifactGroup]) -> list[ArtifactGroup]:
    return sorted(groups, key=lambda g: (g.unit.unit_id, g.unit.profile))


class AgePolicy:
    """Remove every unit last built strictly before ``cutoff`` (epoch seconds)."""

    name = "age"

    def __init__(self, cutoff: float):
        if isinstance(cutoff, bool) or not isinstance(cutoff, (int, float)):
            raise InvalidCutoff(f"invalid cutoff timestamp: {cutoff!r}")
        self.cutoff = float(cutoff)

    @classmethod
    def from_duration(cls, duration: str | int | float | timedelta,
                      now: float | None = None, default_unit: int = 1) -> "AgePolicy":
        keep = parse_duration(duration, default_unit)
        if now is None:
            now = time.time()
        return cls(now - keep.total_seconds())

    def evaluate(self, groups: Iterable[ArtifactGroup]) -> list[EvictionDecision]:
        decisions = []
        for group in _ordered(groups):
            age_days = (self.cutoff - group.unit.last_modified) / 86400
            if group.unit.last_modified < self.cutoff:
                decisions.append(EvictionDecision(
                    group, True, self.name, f"built {age_days:.1f} days before cutoff"))
            else:
                decisions.append(EvictionDecision(group, False, self.name, "within retention"))
        return decisions


class ToolchainPolicy:
    """Remove units built by a toolchain outside ``keep``.

    Units whose toolchain could not be resolved are always kept.
    """

    name = "toolchain"

    def __init__(self, keep: Iterable[str]):
        if isinstance(keep, str):
            keep = [keep]
        self.keep = frozenset(str(k).strip() for k in keep if str(k).strip())

    def evaluate(self, groups: Iterable[ArtifactGroup]) -> list[EvictionDecision]:
        decisions = []
        for group in _ordered(groups):
            unit = group.unit
            if not unit.toolchain_known:
                decisions.append(EvictionDecision(group, False, self.name, "toolchain unknown"))
            elif unit.toolchain in self.keep:
                decisions.append(EvictionDecision(group, False, self.name, f"built with {unit.toolchain}"))
            else:
                decisions.append(EvictionDecision(
                    group, True, self.name, f"built with {unit.toolchain}, not kept"))
        return decisions


class SizeBudgetPolicy:
    """Evict oldest-first until the cache fits in ``budget`` bytes.

    Equal build times are ordered by unit id, then profile.
    """

    name = "size"

    def __init__(self, budget: int):
        if isinstance(budget, bool) or not isinstance(budget, int):
            raise InvalidBudget(f"invalid budget: {budget!r}")
        if budget < 0:
            raise InvalidBudget(f"budget must not be negative: {budget}")
        self.budget = budget

    def evaluate(self, groups: Iterable[ArtifactGroup]) -> list[EvictionDecision]:
        ordered = sorted(
            groups,
            key=lambda g: (g.unit.last_modified, g.unit.unit_id, g.unit.profile),
        )
        remaining = sum(g.total_size for g in ordered)
        budget_str = format_bytes(self.budget)

        decisions = []
        for group in ordered:
            if remaining > self.budget:
                remaining -= group.total_size
                decisions.append(EvictionDecision(
                    group, True, self.name, f"oldest while over budget {budget_str}"))
            else:
                decisions.append(EvictionDecision(group, False, self.name, f"fits in {budget_str}"))
        return decisions
