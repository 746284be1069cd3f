"""Enumerate compilation units from a build cache's bookkeeping records.

A Cargo target directory holds one or more profile directories (``debug``,
``release``, ``<triple>/debug`` ...). Each has a bookkeeping directory
(``.fingerprint``) with one subdirectory per compilation unit, named
``<crate>-<hash>``. The JSON files inside record, among other build inputs, the
compiler that produced the unit.
"""
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import RecordUnreadable, RootUnavailable

if TYPE_CHECKING:
    from ..config import EngineConfig

logger = logging.getLogger("buildsweep.engine.fingerprint")

UNKNOWN_TOOLCHAIN = "unknown"


@dataclass(frozen=True)
class CompilationUnit:
    unit_id: str
    profile: str
    last_modified: float
    toolchain: str
    record_dir: Path

    @property
    def key(self) -> str | None:
        """Hash suffix shared by every artifact of this unit, None if the name has none."""
        return unit_key(self.unit_id)

    @property
    def qualified_id(self) -> str:
        return f"{self.profile}/{self.unit_id}"

    @property
    def profile_dir(self) -> Path:
        return self.record_dir.parent.parent

    @property
    def toolchain_known(self) -> bool:
        return self.toolchain != UNKNOWN_TOOLCHAIN


def unit_key(name: str) -> str | None:
    if "-" not in name:
        return None
    return name.rsplit("-", 1)[-1] or None


def _default_config() -> EngineConfig:
    from ..config import EngineConfig
    return EngineConfig()


def find_profiles(root: Path, bookkeeping_dir: str = ".fingerprint") -> list[Path]:
    """Profile directories at depth 1 or 2 below ``root`` holding a bookkeeping dir.

    ``root`` itself is returned when it is a profile directory.
    """
    if (root / bookkeeping_dir).is_dir():
        return [root]
    try:
        children = sorted(p for p in root.iterdir() if p.is_dir())
    except OSError as e:
        raise RootUnavailable(root, e.strerror or str(e)) from e

    profiles: list[Path] = []
    for child in children:
        if child.name.startswith("."):
            continue
        if (child / bookkeeping_dir).is_dir():
            profiles.append(child)
            continue
        # Cross-compiled profiles live one level deeper: target/<triple>/<profile>
        try:
            nested = sorted(p for p in child.iterdir() if p.is_dir())
        except OSError as e:
            logger.debug("Skipping unreadable directory %s: %s", child, e)
            continue
        profiles.extend(p for p in nested if (p / bookkeeping_dir).is_dir())
    return profiles


def read_toolchain(record_dir: Path, fields: list[str]) -> str:
    """Toolchain recorded in the first JSON record of ``record_dir`` that has one.

    Raises:
        RecordUnreadable: no record in the directory yields a toolchain.
    """
    problems: list[str] = []
    for record in sorted(record_dir.glob("*.json")):
        try:
            data = json.loads(record.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            problems.append(f"{record.name}: {e}")
            continue
        if not isinstance(data, dict):
            problems.append(f"{record.name}: not an object")
            continue
        for field in fields:
            value = data.get(field)
            if value is None or isinstance(value, (dict, list, bool)) or value == "":
                continue
            return str(value)
        problems.append(f"{record.name}: no toolchain field")
    if not problems:
        problems.append("no JSON record")
    raise RecordUnreadable("; ".join(problems))


def record_mtime(record_dir: Path) -> float:
    """Newest mtime of the record directory and the files directly inside it."""
    newest = record_dir.stat().st_mtime
    with os.scandir(record_dir) as it:
        for entry in it:
            try:
                if entry.is_file(follow_symlinks=False):
                    newest = max(newest, entry.stat(follow_symlinks=False).st_mtime)
            except OSError:
                continue
    return newest


def parse_profile(root: Path, profile_dir: Path,
                  config: EngineConfig | None = None) -> list[CompilationUnit]:
    if config is None:
        config = _default_config()
    store = profile_dir / config.bookkeeping_dir
    profile = profile_dir.relative_to(root).as_posix()
    try:
        entries = sorted(store.iterdir())
    except OSError as e:
        raise RootUnavailable(store, e.strerror or str(e)) from e

    units: list[CompilationUnit] = []
    for entry in entries:
        if entry.is_symlink() or not entry.is_dir():
            logger.debug("Skipping stray entry %s", entry)
            continue
        try:
            last_modified = record_mtime(entry)
        except OSError as e:
            logger.debug("Skipping record %s: %s", entry, e)
            continue
        try:
            toolchain = read_toolchain(entry, config.toolchain_fields)
        except RecordUnreadable as e:
            logger.debug("Unresolved toolchain for %s: %s", entry.name, e)
            toolchain = UNKNOWN_TOOLCHAIN
        units.append(CompilationUnit(
            unit_id=entry.name,
            profile=profile,
            last_modified=last_modified,
            toolchain=toolchain,
            record_dir=entry,
        ))
    return units


def parse_units(root: Path, config: EngineConfig | None = None) -> list[CompilationUnit]:
    """Every compilation unit recorded under ``root``, sorted by (unit_id, profile).

    Raises:
        RootUnavailable: the root or a bookkeeping directory cannot be opened,
            or the root holds no bookkeeping directory at all.
    """
    if config is None:
        config = _default_config()
    root = Path(root)
    profiles = find_profiles(root, config.bookkeeping_dir)
    if not profiles:
        raise RootUnavailable(root, f"no {config.bookkeeping_dir} directory found")

    units: list[CompilationUnit] = []
    for profile_dir in profiles:
        units.extend(parse_profile(root, profile_dir, config))
    units.sort(key=lambda u: (u.unit_id, u.profile))
    logger.debug("Parsed %d units from %d profile(s) in %s", len(units), len(profiles), root)
    return units
