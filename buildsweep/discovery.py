"""Locate Cargo target directories for a single project or a whole tree."""
from __future__ import annotations
import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any

logger = logging.getLogger("buildsweep.discovery")

MANIFEST = "Cargo.toml"


class MetadataError(RuntimeError):
    """``cargo metadata`` failed or returned something unusable."""


def metadata(path: Path, cargo: str = "cargo") -> dict[str, Any]:
    """Output of ``cargo metadata --no-deps`` for the project at ``path``.

    Raises:
        MetadataError: cargo is missing, fails, or prints invalid JSON.
    """
    path = Path(path)
    manifest = path if path.name == MANIFEST else path / MANIFEST
    cmd = [cargo, "metadata", "--no-deps", "--format-version", "1",
           "--manifest-path", str(manifest)]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise MetadataError(f"{cargo} not found") from e
    if result.returncode != 0:
        raise MetadataError(result.stderr.strip() or f"exit status {result.returncode}")
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise MetadataError(f"invalid cargo metadata output: {e}") from e
    if not isinstance(data, dict) or "target_directory" not in data:
        raise MetadataError("cargo metadata output has no target_directory")
    return data


def target_directory(path: Path, cargo: str = "cargo") -> Path | None:
    """The project's target directory, if it exists on disk."""
    try:
        data = metadata(path, cargo)
    except MetadataError as e:
        logger.debug("Not a cargo project %s: %s", path, e)
        return None
    out = Path(data["target_directory"])
    return out if out.exists() else None


def _is_under(path: Path, found: set[Path]) -> bool:
    return any(p in found for p in (path, *path.parents))


def find_cargo_projects(root: Path, include_hidden: bool = False,
                        cargo: str = "cargo") -> list[Path]:
    """Target directories of every cargo project below ``root``.

    Directories inside an already found target directory are not descended
    into, nor are hidden ones unless ``include_hidden`` is set.
    """
    root = Path(root).resolve()
    targets: set[Path] = set()
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept = []
        for d in sorted(dirnames):
            if not include_hidden and d.startswith("."):
                continue
            if _is_under(current / d, targets):
                continue
            kept.append(d)
        dirnames[:] = kept

        if MANIFEST not in filenames:
            continue
        target = target_directory(current, cargo)
        if target is None:
            continue
        targets.add(target)
        # No reason to look at src/ and friends once the project is known.
        dirnames[:] = []
    return sorted(targets)
