import json
import logging
import os
import time
from pathlib import Path

import pytest

MIB = 1024 * 1024
DAY = 86400


class CargoTarget:
    """Builds a fake Cargo target directory with fingerprint records and outputs."""

    def __init__(self, root: Path, now: float):
        self.root = root
        self.now = now
        self.root.mkdir(parents=True, exist_ok=True)

    def unit(self, name: str, key: str, *, toolchain: object = "1.70.0", size: int = MIB,
             age_days: float = 0, profile: str = "debug", record: str | None = None,
             outputs: tuple[str, ...] = ("deps/lib{name}-{key}.rlib",)) -> Path:
        """Create one unit whose group totals exactly ``size`` bytes. Returns the record dir."""
        profile_dir = self.root / profile
        record_dir = profile_dir / ".fingerprint" / f"{name}-{key}"
        record_dir.mkdir(parents=True)
        if record is None:
            record = json.dumps({"rustc": toolchain, "features": "[]", "path": 1})
        (record_dir / f"lib-{name}.json").write_text(record)
        (record_dir / f"lib-{name}").write_text(key)

        remaining = size - sum(p.stat().st_size for p in record_dir.iterdir())
        assert remaining >= 0
        paths = [profile_dir / o.format(name=name, key=key) for o in outputs]
        for i, path in enumerate(paths):
            path.parent.mkdir(parents=True, exist_ok=True)
            chunk = remaining if i == len(paths) - 1 else remaining // len(paths)
            remaining -= chunk
            with open(path, "wb") as f:
                f.truncate(chunk)

        ts = self.now - age_days * DAY
        for p in record_dir.iterdir():
            os.utime(p, (ts, ts))
        os.utime(record_dir, (ts, ts))
        return record_dir


@pytest.fixture
def now():
    return time.time()


@pytest.fixture
def target(tmp_path, now):
    return CargoTarget(tmp_path / "target", now)


@pytest.fixture
def scenario(target):
    """Three units: 10 MiB built 3 days ago, 20 MiB 1 day ago, 5 MiB 5 days ago."""
    target.unit("alpha", "aaaa000000000001", size=10 * MIB, age_days=3, toolchain="1.70.0")
    target.unit("beta", "bbbb000000000002", size=20 * MIB, age_days=1, toolchain="1.65.0")
    target.unit("gamma", "cccc000000000003", size=5 * MIB, age_days=5, record="{not json")
    return target


@pytest.fixture
def tree_snapshot():
    def _snapshot(root: Path) -> dict[str, int]:
        return {str(p.relative_to(root)): p.lstat().st_size for p in root.rglob("*")}
    return _snapshot


@pytest.fixture(autouse=True)
def _reset_buildsweep_logger():
    yield
    log = logging.getLogger("buildsweep")
    log.handlers.clear()
    log.setLevel(logging.NOTSET)
    log.propagate = True
