"""Command line front end for buildsweep."""
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path

from .config import Settings, load_settings
from .discovery import find_cargo_projects, target_directory
from .engine.errors import InvalidInput, RootUnavailable
from .engine.policies import AgePolicy, EvictionPolicy, SizeBudgetPolicy, ToolchainPolicy
from .engine.sweep import sweep
from .engine.units import BYTES_PER_MIB, SECONDS_PER_DAY, format_bytes, parse_size
from .stamp import Timestamp
from .toolchains import ToolchainError, installed_toolchain_ids, resolve_keep_set

logger = logging.getLogger("buildsweep")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTIAL = 2

_LEVEL_COLORS = {
    logging.ERROR: "\x1b[31m",
    logging.WARNING: "\x1b[33m",
    logging.INFO: "\x1b[37m",
    logging.DEBUG: "\x1b[37m",
}
_LEVEL_NAME_COLORS = {logging.INFO: "\x1b[32m"}
_TRACE_COLOR = "\x1b[90m"
_RESET = "\x1b[0m"


class _ColoredLineFormatter(logging.Formatter):
    """Colors the whole line by level, with the level name highlighted."""

    def format(self, record: logging.LogRecord) -> str:
        line_color = _LEVEL_COLORS.get(record.levelno, _TRACE_COLOR)
        level_color = _LEVEL_NAME_COLORS.get(record.levelno, line_color)
        return (f"{line_color}[{level_color}{record.levelname}{line_color}] "
                f"{record.getMessage()}{_RESET}")


def _setup_logging(log_level: str = "info", color: bool = True):
    """Configure console logging for buildsweep."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if color:
        handler.setFormatter(_ColoredLineFormatter())
    else:
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def parse_maxsize(text: str) -> int:
    """--maxsize value in bytes; a bare number means MiB."""
    return parse_size(text, default_unit=BYTES_PER_MIB)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildsweep",
        description="Clean old or unused build artifacts out of Cargo target directories.",
    )
    parser.add_argument("path", nargs="?", default=".", help="Path to check (default: .)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Turn verbose information on")
    parser.add_argument("-r", "--recursive", action="store_true",
                        help="Apply on all projects below the given path")
    parser.add_argument("--hidden", action="store_true",
                        help="With --recursive, also look inside directories starting with '.'")
    parser.add_argument("-d", "--delete", action="store_true",
                        help="Do deletion of matching files (default is dry run)")
    parser.add_argument("-D", "--debug", dest="debug_output", action="store_true",
                        help="Print the decision for every compilation unit")
    parser.add_argument("--config", type=Path, help="YAML settings file")

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("-s", "--stamp", action="store_true",
                      help="Store a timestamp file in the given path, used by --file")
    mode.add_argument("-f", "--file", action="store_true",
                      help="Load the timestamp file in the given path, cleaning everything older")
    mode.add_argument("-t", "--time", metavar="DAYS",
                      help="Keep artifacts built within DAYS (or a duration like 12h, 2w)")
    mode.add_argument("-i", "--installed", action="store_true",
                      help="Keep only artifacts made by toolchains currently installed by rustup")
    mode.add_argument("--toolchains", metavar="LIST",
                      help="Comma separated toolchains whose artifacts should be kept")
    mode.add_argument("--maxsize", metavar="SIZE",
                      help="Remove oldest artifacts until the target directory is below SIZE "
                           "(MiB, or with a unit like 2G)")
    return parser


def _build_policy(args: argparse.Namespace, settings: Settings) -> EvictionPolicy:
    if args.maxsize is not None:
        return SizeBudgetPolicy(parse_maxsize(args.maxsize))
    if args.time is not None:
        return AgePolicy.from_duration(args.time, default_unit=SECONDS_PER_DAY)
    if args.file:
        ts = Timestamp.load(Path(args.path))
        return AgePolicy(ts.to_epoch())
    if args.toolchains is not None:
        return ToolchainPolicy(resolve_keep_set(args.toolchains.split(","), settings.toolchains))
    return ToolchainPolicy(installed_toolchain_ids(settings.toolchains))


def _find_roots(args: argparse.Namespace, settings: Settings) -> list[Path]:
    path = Path(args.path)
    if args.recursive:
        include_hidden = args.hidden or settings.discovery.include_hidden
        return find_cargo_projects(path, include_hidden, settings.toolchains.cargo)
    target = target_directory(path, settings.toolchains.cargo)
    if target is None:
        logger.error("Failed to clean %s as it is not a cargo project with a target directory.", path)
        return []
    return [target]


def _display(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)
    _setup_logging("debug" if args.verbose else settings.logging.level, settings.logging.color)

    if args.stamp:
        logger.debug("Writing timestamp file in: %s", args.path)
        try:
            Timestamp.new().store(Path(args.path))
        except OSError as e:
            logger.error("Failed to write timestamp file: %s", e)
            return EXIT_ERROR
        return EXIT_OK

    try:
        policy = _build_policy(args, settings)
    except (InvalidInput, ToolchainError) as e:
        logger.error("%s", e)
        return EXIT_ERROR

    roots = _find_roots(args, settings)
    if not roots:
        return EXIT_ERROR if not args.recursive else EXIT_OK

    exit_code = EXIT_OK
    for root in roots:
        try:
            report = sweep(root, policy, apply=args.delete, verbose=args.debug_output,
                           config=settings.engine)
        except RootUnavailable as e:
            logger.error("Failed to clean %s: %s", root, e)
            exit_code = EXIT_ERROR
            continue
        logger.info(
            "%s: %s %s",
            _display(root),
            format_bytes(report.reclaimed_bytes),
            "cleaned" if args.delete else "would be cleaned",
        )
        if not report.ok and exit_code == EXIT_OK:
            exit_code = EXIT_PARTIAL
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
