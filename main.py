"""
Main entry point for bilidump.

This script configures logging, parses command-line arguments and runs the
library pipeline over the client's cache directory.
"""

import sys
from typing import List, Optional

from loguru import logger

from bilidump.cli import get_args
from bilidump.config.common import LOGGER_FORMAT
from bilidump.domain.exceptions import DirectoryUnreadableException, ToolNotFoundException
from bilidump.pipeline.dump_pipeline import LibraryPipeline

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_ITEMS_FAILED = 2


# Configure the logger for initial setup.
# The level is overridden once the command-line arguments are known.
logger.remove()
logger.add(sys.stderr, level="INFO", format=LOGGER_FORMAT)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Runs one dump over the cache directory.

    Returns:
        0 on a completed run, 1 if the run could not start (missing FFmpeg,
        unreadable source directory), 2 if `--strict` is set and any item failed.
    """
    args = get_args(argv)

    logger.remove()
    logger.add(sys.stderr, level=args.log_level, format=LOGGER_FORMAT)
    logger.debug(f"Parsed arguments: {args}")

    pipeline = LibraryPipeline(args.source_dir, args.target_dir, args=args)
    try:
        summary = pipeline.run()
    except (ToolNotFoundException, DirectoryUnreadableException) as e:
        logger.critical(f"Cannot run: {e}")
        return EXIT_FATAL

    if args.strict and summary.failed:
        logger.error(f"{summary.failed} item(s) failed.")
        return EXIT_ITEMS_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
