"""Entry points: parse, group, classify and execute for one cache root."""
from __future__ import annotations
import logging
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable, TYPE_CHECKING

from .executor import DeletionExecutor, EvictionReport
from .fingerprint import parse_units
from .grouper import group_artifacts
from .policies import AgePolicy, EvictionPolicy, SizeBudgetPolicy, ToolchainPolicy
from .units import format_bytes, parse_size

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger("buildsweep.engine")

ToolchainResolver = Callable[[], Iterable[str]]


def sweep(root: str | Path, policy: EvictionPolicy, apply: bool = False,
          verbose: bool = False, *, config: EngineConfig | None = None) -> EvictionReport:
    """Run ``policy`` against one cache root and return the full report.

    Raises:
        RootUnavailable: the root or its bookkeeping directory cannot be opened.
    """
    root = Path(root)
    units = parse_units(root, config)
    groups = group_artifacts(units, config)
    decisions = policy.evaluate(groups.values())
    report = DeletionExecutor(dry_run=not apply, verbose=verbose).execute(root, decisions)
    logger.debug(
        "%s policy on %s: %d removed, %d kept, %s %s, %s remaining",
        policy.name, root, report.removed_count, report.kept_count,
        format_bytes(report.reclaimed_bytes),
        "cleaned" if apply else "would be cleaned",
        format_bytes(report.remaining_bytes),
    )
    return report


def evict_by_age(root: str | Path, cutoff_duration: str | int | float | timedelta,
                 apply: bool = False, verbose: bool = False, *,
                 now: float | None = None, config: EngineConfig | None = None) -> int:
    """Remove units older than ``cutoff_duration``. Bare numbers are seconds."""
    policy = AgePolicy.from_duration(cutoff_duration, now=now)
    return sweep(root, policy, apply, verbose, config=config).reclaimed_bytes


def evict_by_age_since(root: str | Path, cutoff_ts: float, apply: bool = False,
                       verbose: bool = False, *, config: EngineConfig | None = None) -> int:
    """Remove units built before an absolute epoch timestamp (marker mode)."""
    return sweep(root, AgePolicy(cutoff_ts), apply, verbose, config=config).reclaimed_bytes


def evict_by_toolchain(root: str | Path, keep_toolchains: Iterable[str] | None = None,
                       apply: bool = False, verbose: bool = False, *,
                       resolver: ToolchainResolver | None = None,
                       config: EngineConfig | None = None) -> int:
    """Remove units not built by a kept toolchain.

    ``keep_toolchains=None`` keeps whatever ``resolver`` reports, by default
    the toolchains installed on this host.
    """
    if keep_toolchains is None:
        if resolver is None:
            from ..toolchains import installed_toolchain_ids
            resolver = installed_toolchain_ids
        keep_toolchains = resolver()
    policy = ToolchainPolicy(keep_toolchains)
    logger.debug("Keeping toolchains: %s", ", ".join(sorted(policy.keep)) or "(none)")
    return sweep(root, policy, apply, verbose, config=config).reclaimed_bytes


def evict_by_size(root: str | Path, budget_bytes: int | str, apply: bool = False,
                  verbose: bool = False, *, config: EngineConfig | None = None) -> int:
    """Remove oldest units until the cache fits in ``budget_bytes``."""
    if isinstance(budget_bytes, str):
        budget_bytes = parse_size(budget_bytes)
    policy = SizeBudgetPolicy(budget_bytes)
    return sweep(root, policy, apply, verbose, config=config).reclaimed_bytes

