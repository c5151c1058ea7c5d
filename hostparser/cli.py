import argparse
import json
import logging
import sys
import tomllib
from pathlib import Path
from typing import Sequence

from . import Config, HostparserError, __version__, parse_count
from .pipeline import run_pipeline

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


def load_config_file(path: Path) -> dict:
    """Read option defaults from a TOML or JSON file.

    Unreadable files are reported and ignored.
    """
    try:
        text = path.read_text()
        if path.suffix == ".toml":
            data = tomllib.loads(text)
        else:
            data = json.loads(text)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read config file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.error(f"Config file {path} must contain a table of options")
        return {}
    return {k.replace("-", "_"): v for k, v in data.items()}


def build_parser() -> argparse.ArgumentParser:
    defaults = Config()
    parser = argparse.ArgumentParser(
        prog="hostparser",
        description="A very fast hostparser: print the registrable domain of each host read from stdin",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="path to a TOML or JSON config file", default=None)
    # counts stay strings here so a bad value can fall back to its default
    parser.add_argument("-r", "--rate", default=str(defaults.rate), help="maximum hosts admitted per second")
    parser.add_argument("-c", "--concurrency", default=str(defaults.concurrency), help="number of concurrent workers")
    parser.add_argument("-w", "--workers", default=str(defaults.workers), help="number of execution threads")
    parser.add_argument("-i", "--input", dest="input_file", type=Path, default=None, help="read hosts from a file instead of stdin")
    parser.add_argument("--include-private", action="store_true", default=defaults.include_private, help="treat private PSL suffixes as public suffixes")
    parser.add_argument("--offline", action="store_true", default=defaults.offline, help="use the bundled suffix list snapshot only")
    parser.add_argument("--cache-dir", type=Path, default=defaults.cache_dir, help="suffix list cache directory")
    parser.add_argument("--log-file", type=Path, default=defaults.log_file)
    parser.add_argument("--progress", action="store_true", default=defaults.progress, help="show a progress bar on stderr")
    parser.add_argument("-v", "--verbose", action="count", default=defaults.verbose)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    args, _ = parser.parse_known_args(argv)
    if args.config:
        data = load_config_file(args.config)
        known = {k: v for k, v in data.items() if hasattr(args, k) and k != "config"}
        for k in sorted(set(data) - set(known)):
            logger.warning(f"Ignoring unknown option {k!r} in {args.config}")
        if "verbose" in known:
            # -v increments this default, so it must already be an int
            known["verbose"] = parse_count(known["verbose"], 0, "verbose", minimum=0)
        # file values become defaults so explicit flags still win
        parser.set_defaults(**known)
    return parser.parse_args(argv)


def setup_logging(log_file: Path | None = None, verbose: int = 0) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error = None
    if log_file is not None:
        try:
            handlers.append(logging.FileHandler(log_file))
        except OSError as e:
            file_error = e
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    if file_error is not None:
        logger.error(f"Could not open log file {log_file}: {file_error}")


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = Config.from_mapping(vars(args))
    setup_logging(cfg.log_file, cfg.verbose)

    try:
        run_pipeline(cfg)
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130
    except HostparserError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"I/O error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
