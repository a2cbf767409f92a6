"""
This module provides classes for the persistent run logs written into the target root.

It separates logging concerns into specific classes for handling errors (ErrorLog)
and successes (SuccessLog). Success logs are written in a machine-readable YAML
format, one entry per converted item, while error logs are in a human-readable
text format for easy debugging. Both are independent of the console output,
which is handled by loguru.
"""

from pathlib import Path
from typing import Dict, List, Union

import yaml
from loguru import logger

from ..config.common import SUCCESS_LOG_FILE_NAME


class Log:
    """
    A base class for all logging operations.

    Handles the basic setup of the log directory shared by `ErrorLog` and `SuccessLog`.
    """

    # A decorative separator line used in text-based logs for better readability.
    linesep_marker: str = "=" * 50

    def __init__(self, log_dir: Path):
        self.log_file_path: Path  # To be defined by the subclass.
        self.log_dir: Path = log_dir.resolve()
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def write(self, log_content: Union[dict, list, str]):
        raise NotImplementedError("Subclasses must implement the write() method.")


class ErrorLog(Log):
    """
    Appends human-readable error reports to a plain text file.

    Each call adds one block, closed by a separator line, so the file reads as
    a chronological record of the items that failed.
    """

    DEFAULT_ERROR_FILENAME = "error.txt"

    def __init__(self, error_log_dir: Path, filename: str = DEFAULT_ERROR_FILENAME):
        super().__init__(error_log_dir)
        self.log_file_path = self.log_dir / filename

    def write(self, *error_messages: str):
        """
        Writes one or more error messages to the log file.

        Args:
            *error_messages: Parts of the error report, each written on its own line.
        """
        if not error_messages:
            return

        content_to_write = "\n".join(error_messages) + "\n" + self.linesep_marker + "\n"

        try:
            with self.log_file_path.open("a", encoding="utf-8") as f:
                f.write(content_to_write)
        except OSError as e:
            # Fall back to the console so the report is not lost.
            logger.error(f"Failed to write to error log {self.log_file_path}: {e}")
            for msg in error_messages:
                logger.error(f"  - {msg}")


class SuccessLog(Log):
    """
    Handles structured logging of converted items in YAML format.

    The file always holds one YAML list. Each `write` reads the list, appends
    the new entry with the next index, and writes the whole list back.
    """

    def __init__(self, success_log_dir: Path, filename: str = SUCCESS_LOG_FILE_NAME):
        super().__init__(success_log_dir)
        self.log_file_path = self.log_dir / filename

    def read_entries(self) -> List[Dict]:
        """Returns the entries currently in the log, or an empty list if it is missing or unreadable."""
        if not self.log_file_path.is_file():
            return []
        try:
            with self.log_file_path.open("r", encoding="utf-8") as f:
                loaded_entries = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error reading/parsing success log {self.log_file_path}: {e}. Starting a new log.")
            return []
        if loaded_entries is None:
            return []
        if not isinstance(loaded_entries, list):
            logger.warning(f"Success log {self.log_file_path} contained unexpected data. Starting a new log.")
            return []
        return loaded_entries

    def write(self, new_log_entry: dict):
        """
        Appends a structured entry to the YAML log.

        Args:
            new_log_entry: A dictionary describing the converted item.
        """
        if not isinstance(new_log_entry, dict):
            logger.error("SuccessLog.write expects a dictionary as a log entry.")
            return

        log_entries = self.read_entries()
        current_max_index = max(
            (
                entry.get("index", 0)
                for entry in log_entries
                if isinstance(entry, dict)
            ),
            default=0,
        )
        log_entries.append({"index": current_max_index + 1, **new_log_entry})

        try:
            with self.log_file_path.open("w", encoding="utf-8") as f:
                yaml.dump(
                    log_entries,
                    f,
                    default_flow_style=False,
                    sort_keys=False,
                    allow_unicode=True,
                    indent=4,
                    width=220,
                )
        except OSError as e:
            logger.error(f"Failed to write to success log {self.log_file_path}: {e}")
