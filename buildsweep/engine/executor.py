"""Apply eviction decisions to disk. Nothing is removed unless asked."""
from __future__ import annotations
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .errors import DeletionFailed
from .grouper import ArtifactGroup
from .policies import EvictionDecision
from .units import format_bytes

logger = logging.getLogger("buildsweep.engine.executor")


@dataclass
class DeletionFailure:
    group: ArtifactGroup
    path: Path
    error: str
    freed_bytes: int = 0


@dataclass
class EvictionReport:
    root: Path
    dry_run: bool
    reclaimed_bytes: int = 0
    removed_count: int = 0
    kept_count: int = 0
    remaining_bytes: int = 0
    failures: list[DeletionFailure] = field(default_factory=list)
    decisions: list[EvictionDecision] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _remove_entry(path: Path) -> bool:
    """Remove one file, symlink or directory tree.

    Returns False when the entry had already vanished.
    """
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise DeletionFailed(path, e) from e
    return True


class DeletionExecutor:
    def __init__(self, dry_run: bool = True, verbose: bool = False):
        self._dry_run = dry_run
        self._verbose = verbose

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    def execute(self, root: Path, decisions: Iterable[EvictionDecision]) -> EvictionReport:
        report = EvictionReport(root=Path(root), dry_run=self._dry_run)
        for decision in decisions:
            group = decision.group
            if self._verbose:
                logger.info(
                    "%-6s %10s  %s (%s: %s)",
                    decision.verdict, format_bytes(decision.total_size),
                    group.qualified_id, decision.policy, decision.reason,
                )
                report.decisions.append(decision)

            if not decision.remove:
                report.kept_count += 1
                report.remaining_bytes += group.total_size
                continue

            if self._dry_run:
                report.reclaimed_bytes += group.total_size
                report.removed_count += 1
                continue

            freed, failure = self._delete_group(group)
            report.reclaimed_bytes += freed
            if failure is None:
                report.removed_count += 1
            else:
                report.failures.append(failure)
                report.remaining_bytes += group.total_size - freed

        if report.failures:
            logger.warning(
                "%d group(s) could not be fully removed in %s: %s",
                len(report.failures), root,
                ", ".join(f.group.qualified_id for f in report.failures),
            )
        return report

    def _delete_group(self, group: ArtifactGroup) -> tuple[int, DeletionFailure | None]:
        """Delete outputs, then the record. Stops at the first failure."""
        freed = 0
        for path in group.files:
            try:
                removed = _remove_entry(path)
            except DeletionFailed as e:
                logger.error("%s", e)
                return freed, DeletionFailure(group, path, str(e.error), freed)
            if removed:
                freed += group.sizes.get(path, 0)
                logger.debug("Removed %s", path)

        try:
            group.unit.record_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("failed to remove record %s: %s", group.unit.record_dir, e)
            return freed, DeletionFailure(group, group.unit.record_dir, str(e), freed)
        return freed, None
