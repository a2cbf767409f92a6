"""
Command-Line Interface (CLI) setup for bilidump.

This module uses Python's `argparse` to define and parse the command-line
arguments that control the application's behavior.
"""
import argparse
from pathlib import Path
from typing import List, Optional

from .config.common import DEFAULT_SOURCE_DIR, DEFAULT_TARGET_DIR, MERGE_TIMEOUT_SECONDS


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not a number")
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than zero")
    return number


def get_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for bilidump.

    Args:
        argv: The arguments to parse. Defaults to `sys.argv[1:]`.

    Returns:
        argparse.Namespace: An object containing the parsed command-line
                            arguments as attributes.
    """
    parser = argparse.ArgumentParser(
        description="Bilibili Video Dumper: merges cached client segments into playable MP4 files."
    )
    parser.add_argument(
        "--source-dir", type=Path, default=DEFAULT_SOURCE_DIR,
        help=f"Directory holding the client's cached items (default: {DEFAULT_SOURCE_DIR}).",
    )
    parser.add_argument(
        "--target-dir", type=Path, default=DEFAULT_TARGET_DIR,
        help=f"Directory receiving the converted items (default: {DEFAULT_TARGET_DIR}).",
    )
    parser.add_argument(
        "--autoremove", action="store_true",
        help="Remove source directories after successful conversion.",
    )
    parser.add_argument(
        "--no-overwrite", action="store_true",
        help="Do not overwrite target file if exists; the item is skipped instead.",
    )
    parser.add_argument(
        "--verify-output", action="store_true",
        help="Probe every merged file with ffprobe and fail the item if it is unreadable.",
    )
    parser.add_argument(
        "--merge-timeout", type=_positive_float, default=MERGE_TIMEOUT_SECONDS,
        help="Seconds after which a single FFmpeg merge is aborted.",
    )
    parser.add_argument(
        "--strict", action="store_true",
        help="Exit with status 2 if any item failed.",
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO", choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set the logging level.",
    )

    args = parser.parse_args(argv)
    args.source_dir = args.source_dir.expanduser()
    args.target_dir = args.target_dir.expanduser()
    return args
