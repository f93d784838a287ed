"""
Main entry point when running the dock_nav module with python -m.
"""

import asyncio
import logging
import sys

from .client import build_parser, main, setup_logging


def run() -> None:
    args = build_parser().parse_args()

    # Setup logging based on verbose flag
    setup_logging(args.verbose)

    try:
        ok = asyncio.run(main(args.recipe, args.uri, args.data_dir, args.dock_strategy, args.output_dir))
    except KeyboardInterrupt:
        logging.info("\nExiting...")
        sys.exit(1)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    run()
