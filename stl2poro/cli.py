"""Command-line entry point.

Usage::

    python -m stl2poro                      # reads ./config.txt
    python -m stl2poro run.cfg --threads 8
    python -m stl2poro run.cfg --backend vtk -v
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import ConfigError, Stl2PoroError
from .logging_config import setup_logging
from .mesh import BACKENDS
from .pipeline import run

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stl2poro",
        description="Convert an STL surface into porosity / occupancy fields on a voxel grid",
    )
    parser.add_argument(
        "config", nargs="?", default=DEFAULT_CONFIG_PATH,
        help=f"key=value configuration file (default {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--threads", type=int, default=None,
        help="worker threads; overrides numThreads",
    )
    parser.add_argument(
        "--chunk-size", type=int, default=None,
        help="nodes per work unit; overrides chunkSize",
    )
    parser.add_argument(
        "--backend", choices=BACKENDS, default=None,
        help="distance query backend; overrides meshBackend",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    setup_logging(level)

    try:
        config = load_config(args.config).with_overrides(
            num_threads=args.threads,
            chunk_size=args.chunk_size,
            mesh_backend=args.backend,
        )
        if config.log_file is not None:
            try:
                setup_logging(level, config.log_file)
            except OSError as exc:
                raise ConfigError(f"logFile: cannot open {config.log_file}: {exc}") from exc
        run(config)
    except Stl2PoroError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("Completed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
