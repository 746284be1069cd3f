"""Timestamp marker for "clean everything older than the last run" mode."""
from __future__ import annotations
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from .engine.errors import InvalidCutoff

logger = logging.getLogger("buildsweep.stamp")

STAMP_FILE = "sweep.timestamp"


@dataclass(frozen=True)
class Timestamp:
    secs_since_epoch: int
    nanos_since_epoch: int = 0

    @classmethod
    def new(cls) -> "Timestamp":
        ns = time.time_ns()
        return cls(ns // 1_000_000_000, ns % 1_000_000_000)

    @staticmethod
    def path_for(directory: Path) -> Path:
        return Path(directory) / STAMP_FILE

    def store(self, directory: Path) -> Path:
        path = self.path_for(directory)
        path.write_text(json.dumps({
            "secs_since_epoch": self.secs_since_epoch,
            "nanos_since_epoch": self.nanos_since_epoch,
        }))
        logger.debug("Wrote timestamp %s to %s", self.secs_since_epoch, path)
        return path

    @classmethod
    def load(cls, directory: Path) -> "Timestamp":
        """Read the marker from ``directory``.

        Raises:
            InvalidCutoff: the marker is missing or unreadable.
        """
        path = cls.path_for(directory)
        try:
            data = json.loads(path.read_text())
            return cls(int(data["secs_since_epoch"]), int(data.get("nanos_since_epoch", 0)))
        except FileNotFoundError as e:
            raise InvalidCutoff(f"no timestamp file at {path}; create one with --stamp") from e
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise InvalidCutoff(f"invalid timestamp file {path}: {e}") from e

    def to_epoch(self) -> float:
        return self.secs_since_epoch + self.nanos_since_epoch / 1e9
