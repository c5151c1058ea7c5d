#!/usr/bin/env python3
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

__version__ = "0.1.3"

logger = logging.getLogger(__name__)

UINT32_MAX = 2**32 - 1


class HostparserError(Exception):
    """Base class for errors raised by the pipeline."""


def parse_count(
    value: Any, default: int, name: str, maximum: int = UINT32_MAX, minimum: int = 1
) -> int:
    """Parse an integer option in ``[minimum, maximum]``, falling back to ``default``.

    A bad value is never fatal: it is reported as a warning and the
    documented default is used instead.
    """
    if isinstance(value, bool):
        logger.warning(f"could not parse {name} {value!r}, using default of {default}")
        return default
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning(f"could not parse {name} {value!r}, using default of {default}")
        return default
    if not minimum <= n <= maximum:
        logger.warning(
            f"{name} must be between {minimum} and {maximum}, got {n}, using default of {default}"
        )
        return default
    return n


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def parse_flag(value: Any, default: bool, name: str) -> bool:
    """Parse a boolean option; ``"false"`` from a config file stays false."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    logger.warning(f"could not parse {name} {value!r}, using default of {default}")
    return default


def _optional_path(value: Any, name: str) -> Path | None:
    if value is None or value == "":
        return None
    if not isinstance(value, (str, os.PathLike)):
        logger.warning(f"{name} must be a path, got {value!r}, ignoring it")
        return None
    return Path(value)


@dataclass
class Config:
    """Runtime options for the hostname pipeline."""

    rate: int = 1000
    concurrency: int = 100
    workers: int = 1
    input_file: Path | None = None
    include_private: bool = False
    offline: bool = False
    cache_dir: Path | None = None
    log_file: Path | None = None
    progress: bool = False
    verbose: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Config":
        """Build a ``Config`` from loosely typed values (argparse, TOML, JSON)."""
        defaults = cls()
        return cls(
            rate=parse_count(data.get("rate", defaults.rate), defaults.rate, "rate"),
            concurrency=parse_count(
                data.get("concurrency", defaults.concurrency),
                defaults.concurrency,
                "concurrency",
            ),
            workers=parse_count(
                data.get("workers", defaults.workers),
                defaults.workers,
                "workers",
                maximum=sys.maxsize,
            ),
            input_file=_optional_path(data.get("input_file"), "input_file"),
            include_private=parse_flag(
                data.get("include_private", defaults.include_private),
                defaults.include_private,
                "include_private",
            ),
            offline=parse_flag(data.get("offline", defaults.offline), defaults.offline, "offline"),
            cache_dir=_optional_path(data.get("cache_dir"), "cache_dir"),
            log_file=_optional_path(data.get("log_file"), "log_file"),
            progress=parse_flag(data.get("progress", defaults.progress), defaults.progress, "progress"),
            verbose=parse_count(
                data.get("verbose", defaults.verbose),
                defaults.verbose,
                "verbose",
                minimum=0,
            ),
        )


@dataclass(frozen=True)
class Job:
    """A single hostname waiting to be normalized."""

    host: str


@dataclass(frozen=True)
class NormalizedDomain:
    """Registrable domain split into its label and public suffix."""

    domain: str
    suffix: str

    def __str__(self) -> str:
        return f"{self.domain}.{self.suffix}"


@dataclass
class PipelineStats:
    """Counters gathered over one pipeline run."""

    read: int = 0
    admitted: int = 0
    unsent: int = 0
    processed: int = 0
    emitted: int = 0
    written: int = 0

    @property
    def failed(self) -> int:
        return self.processed - self.emitted


def main() -> int:
    """Entry point invoking :mod:`hostparser.cli`."""
    from .cli import main as cli_main

    return cli_main()
