"""
This module contains helper functions for formatting data into human-readable strings.
These functions are used throughout the application, particularly in logging, to
present information like timestamps and file sizes in a clear and consistent way.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import List


def format_timestamp(epoch_seconds: int) -> str:
    """
    Formats a Unix timestamp as a UTC "YYYY-MM-DD HH:MM:SS UTC" string.

    Args:
        epoch_seconds: Seconds since the Unix epoch, as stored in the sidecar.

    Returns:
        The formatted string, or "invalid timestamp" if the value is out of range.
    """
    try:
        dt = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "invalid timestamp"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def formatted_size(size_bytes: int) -> str:
    """
    Converts a size in bytes to a human-readable string (e.g., B, KB, MB, GB, TB).

    Args:
        size_bytes: The size of the file in bytes.

    Returns:
        A formatted string with the appropriate unit.
        For example, 1536 becomes "1.50 KB", and 2097152 becomes "2 MB".
    """
    if size_bytes < 0:
        size_bytes = 0

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    factor = 1024.0

    if size_bytes == 0:
        return "0 B"

    for unit in units:
        if size_bytes < factor:
            if unit == "B":
                return f"{size_bytes} {unit}"
            else:
                # "2.00 MB" -> "2 MB"
                return f"{size_bytes:.2f} {unit}".replace(".00", "")
        size_bytes /= factor

    return f"{size_bytes:.2f} {units[-1]}".replace(".00", "")


def contains_any_extensions(
    file_path_obj: Path, extensions_to_check: List[str]
) -> bool:
    """
    Checks if a file's extension is present in a given list (case-insensitive).

    Args:
        file_path_obj: A `pathlib.Path` object for the file to check.
        extensions_to_check: A list of file extensions, with or without the
                             leading dot (e.g., [".m4s"] or ["m4s"]).

    Returns:
        True if the file's extension is in the list, False otherwise.
    """
    if not extensions_to_check:
        return False

    file_extension = file_path_obj.suffix.lower()
    if not file_extension:
        return False

    normalized_extensions = {
        ext.lower() if ext.startswith(".") else f".{ext.lower()}"
        for ext in extensions_to_check
    }

    return file_extension in normalized_extensions
