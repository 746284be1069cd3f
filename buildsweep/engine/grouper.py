"""Join compilation units with the output entries that carry their hash."""
from __future__ import annotations
import logging
import os
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from .fingerprint import CompilationUnit, unit_key

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger("buildsweep.engine.grouper")


@dataclass(frozen=True)
class ArtifactGroup:
    unit: CompilationUnit
    artifacts: tuple[Path, ...]
    record_files: tuple[Path, ...]
    total_size: int
    sizes: dict[Path, int] = field(default_factory=dict, compare=False, repr=False)

    @property
    def files(self) -> tuple[Path, ...]:
        """Everything deleted with the unit; outputs first, the record last."""
        return self.artifacts + self.record_files

    @property
    def qualified_id(self) -> str:
        return self.unit.qualified_id


def entry_key(name: str) -> str | None:
    """Hash key of an output entry name, or None when it carries none.

    ``libserde-1a2b.rlib`` -> ``1a2b``; ``serde-1a2b`` -> ``1a2b``.
    """
    return unit_key(name.split(".", 1)[0])


def entry_size(path: Path) -> int:
    """On-disk size of a file, symlink or directory tree, from stat metadata only."""
    try:
        st = path.lstat()
    except OSError:
        return 0
    if not path.is_dir() or path.is_symlink():
        return st.st_size
    total = 0
    for dirpath, dirnames, filenames in os.walk(path):
        for name in filenames + [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError:
                continue
    return total


def _index_outputs(profile_dir: Path, output_dirs: list[str]) -> dict[str, list[Path]]:
    index: dict[str, list[Path]] = defaultdict(list)
    for name in output_dirs:
        out_dir = profile_dir / name
        if not out_dir.is_dir():
            continue
        try:
            entries = list(out_dir.iterdir())
        except OSError as e:
            logger.warning("Cannot list %s: %s", out_dir, e)
            continue
        for entry in entries:
            key = entry_key(entry.name)
            if key:
                index[key].append(entry)
    return index


def _record_files(record_dir: Path) -> list[Path]:
    try:
        return sorted(record_dir.iterdir())
    except OSError as e:
        logger.warning("Cannot list record %s: %s", record_dir, e)
        return []


def group_artifacts(units: list[CompilationUnit],
                    config: EngineConfig | None = None) -> dict[str, ArtifactGroup]:
    """Build the ``qualified_id -> ArtifactGroup`` index for ``units``.

    Output directories are listed once per profile; units are then joined to
    the entries sharing their hash key.
    """
    if config is None:
        from ..config import EngineConfig
        config = EngineConfig()

    indexes: dict[Path, dict[str, list[Path]]] = {}
    groups: dict[str, ArtifactGroup] = {}
    for unit in sorted(units, key=lambda u: (u.unit_id, u.profile)):
        profile_dir = unit.profile_dir
        if profile_dir not in indexes:
            indexes[profile_dir] = _index_outputs(profile_dir, config.output_dirs)
        # A record without a hash suffix owns only its own files.
        artifacts = sorted(indexes[profile_dir].get(unit.key, [])) if unit.key else []
        record_files = _record_files(unit.record_dir)

        sizes = {p: entry_size(p) for p in artifacts + record_files}
        groups[unit.qualified_id] = ArtifactGroup(
            unit=unit,
            artifacts=tuple(artifacts),
            record_files=tuple(record_files),
            total_size=sum(sizes.values()),
            sizes=sizes,
        )
    logger.debug("Grouped %d units", len(groups))
    return groups
