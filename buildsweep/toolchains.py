"""Installed toolchain enumeration through rustup.

Cargo does not record the compiler version in a fingerprint, it records a
hash of it. The only reliable way to learn the hash a toolchain produces is to
build something with it and read the resulting fingerprint back.
"""
from __future__ import annotations
import logging
import os
import re
import subprocess
import tempfile
from pathlib import Path
from typing import Iterable, TYPE_CHECKING

from .engine.errors import RootUnavailable
from .engine.fingerprint import parse_units

if TYPE_CHECKING:
    from .config import ToolchainConfig

logger = logging.getLogger("buildsweep.toolchains")

PROBE_CRATE = "buildsweep-probe"
_PROBE_MANIFEST = f"""[package]
name = "{PROBE_CRATE}"
version = "0.0.0"
edition = "2018"

[workspace]
"""
_SUFFIX_RE = re.compile(r"\s*\((default|override|active)[^)]*\)\s*$")
_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class ToolchainError(RuntimeError):
    """rustup or cargo could not be run for a toolchain."""


def _default_config() -> ToolchainConfig:
    from .config import ToolchainConfig
    return ToolchainConfig()


def list_installed(config: ToolchainConfig | None = None) -> list[str]:
    """Names of the toolchains rustup has installed."""
    if config is None:
        config = _default_config()
    try:
        result = subprocess.run(
            [config.rustup, "toolchain", "list"],
            capture_output=True, text=True, check=False,
        )
    except FileNotFoundError as e:
        raise ToolchainError(f"{config.rustup} not found") from e
    if result.returncode != 0:
        raise ToolchainError(result.stderr.strip() or f"exit status {result.returncode}")
    names = []
    for line in result.stdout.splitlines():
        name = _SUFFIX_RE.sub("", line).strip()
        if name and not name.startswith("no installed toolchains"):
            names.append(name)
    return names


def toolchain_id(toolchain: str, config: ToolchainConfig | None = None) -> str:
    """Identifier ``toolchain`` writes into fingerprints, found by a probe build."""
    if config is None:
        config = _default_config()
    with tempfile.TemporaryDirectory(prefix="buildsweep-") as tmp:
        project = Path(tmp)
        (project / "src").mkdir()
        (project / "src" / "lib.rs").write_text("")
        (project / "Cargo.toml").write_text(_PROBE_MANIFEST)
        target = project / "target"
        env = dict(os.environ, CARGO_TARGET_DIR=str(target))
        try:
            result = subprocess.run(
                [config.cargo, f"+{toolchain}", "build", "--offline", "--quiet"],
                cwd=project, env=env, capture_output=True, text=True,
                timeout=config.probe_timeout, check=False,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise ToolchainError(f"probe build with {toolchain} failed: {e}") from e
        if result.returncode != 0:
            raise ToolchainError(
                f"probe build with {toolchain} failed: {result.stderr.strip()}")

        try:
            units = parse_units(target)
        except RootUnavailable as e:
            raise ToolchainError(f"probe build with {toolchain} left no fingerprint") from e
        for unit in units:
            if unit.unit_id.startswith(PROBE_CRATE) and unit.toolchain_known:
                return unit.toolchain
    raise ToolchainError(f"probe build with {toolchain} left no fingerprint")


def resolve_keep_set(names: Iterable[str], config: ToolchainConfig | None = None) -> set[str]:
    """Map toolchain names (``stable``, ``nightly-2024-01-01``) to fingerprint ids.

    A bare hash is kept as given. A version number that no installed
    toolchain answers to is kept as given too, for records that carry the
    version itself.
    """
    keep: set[str] = set()
    for name in names:
        name = name.strip()
        if not name:
            continue
        if name.isdigit():
            keep.add(name)
            continue
        try:
            keep.add(toolchain_id(name, config))
        except ToolchainError:
            if not _VERSION_RE.match(name):
                raise
            logger.debug("Keeping %s as a literal toolchain id", name)
            keep.add(name)
    return keep


def installed_toolchain_ids(config: ToolchainConfig | None = None) -> set[str]:
    ids: set[str] = set()
    for name in list_installed(config):
        try:
            ids.add(toolchain_id(name, config))
        except ToolchainError as e:
            logger.warning("Skipping toolchain %s: %s", name, e)
            continue
        logger.debug("Toolchain %s is installed", name)
    if not ids:
        # An empty keep-set would evict every attributed unit.
        raise ToolchainError("no installed toolchain could be resolved")
    return ids
