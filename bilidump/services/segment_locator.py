"""
Discovers the cached segment files of an item directory.
"""
from pathlib import Path
from typing import List

from loguru import logger

from ..config.common import SEGMENT_EXTENSION
from ..domain.exceptions import DirectoryUnreadableException
from ..utils.format_utils import contains_any_extensions


def find_segments(item_dir: Path, extension: str = SEGMENT_EXTENSION) -> List[Path]:
    """
    Lists the immediate child files of `item_dir` whose extension matches.

    The files are returned in filesystem enumeration order; FFmpeg maps the
    video and audio fragments by content, so no sorting is applied.
    Subdirectories and files with other extensions are skipped. An empty list
    is a valid answer and is left for the caller to judge.

    Args:
        item_dir: The cached item's directory.
        extension: The extension token, with or without the leading dot.

    Raises:
        DirectoryUnreadableException: If `item_dir` itself cannot be enumerated.
    """
    try:
        entries = list(item_dir.iterdir())
    except OSError as e:
        raise DirectoryUnreadableException(f"Cannot list {item_dir}: {e}") from e

    segments = [
        entry for entry in entries
        if contains_any_extensions(entry, [extension]) and entry.is_file()
    ]
    logger.debug(f"Found {len(segments)} '{extension}' segment(s) in {item_dir}: {[s.name for s in segments]}")
    return segments
