"""
Defines data models for temporary state management, primarily for tracking
the progress of a single item conversion.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

from ..config.common import ITEM_STATUS_PENDING, ITEM_STATUSES_UNFINISHED


class ConvertInfo:
    """
    Manages information and state for a single item conversion.

    The client's cache gives no hint of how far a previous run got with an item,
    so this class serializes the state of a conversion to a YAML file, which
    acts as a progress tracker. The file is named after the item id
    (e.g., `12345.progress.yaml`) and stored in a cache directory within the
    target root.

    Lifecycle:
    1. When an item is picked up, an instance is created and `load()` is called.
       - A status of 'decoding' or 'merging' means a previous run stopped in the
         middle of writing this item; 'error' means the last attempt failed.
         Either way an output file left on disk cannot be trusted.
       - A status of 'converted' or 'removed' means the output is complete.
    2. The item pipeline calls `dump()` at every transition.
    3. The record is kept after completion; it is the proof that the output on
       disk was finished by this tool.

    Attributes:
        item_id (int): The item id this record belongs to.
        path (Path): The full path to the `.progress.yaml` file.
        status (str): The current stage (see `bilidump.config.common`).
        source_dir (Optional[str]): The cached item directory the conversion reads from.
        final_file (Optional[str]): The merged output file.
        last_error_message (Optional[str]): A brief message describing the last error.
        attempt_count (int): How many times a conversion of this item was started.
        last_updated (Optional[str]): ISO 8601 timestamp of the last save.
    """

    def __init__(self, item_id: int, storage_dir: Path):
        self.item_id = item_id
        self.storage_dir = storage_dir.resolve()
        self.path = self.storage_dir / f"{self.item_id}.progress.yaml"

        self.status: str = ITEM_STATUS_PENDING
        self.source_dir: Optional[str] = None
        self.final_file: Optional[str] = None
        self.last_error_message: Optional[str] = None
        self.attempt_count: int = 0
        self.last_updated: Optional[str] = None

    @property
    def unfinished(self) -> bool:
        """True if the last attempt on this item stopped or failed before the output was complete."""
        return self.status in ITEM_STATUSES_UNFINISHED

    def dump(self,
             status: Optional[str] = None,
             source_dir: Optional[str] = None,
             final_file: Optional[str] = None,
             last_error_message: Optional[str] = None,
             increment_attempt_count: bool = False,
             ):
        """
        Updates instance attributes and saves the current state to the YAML file.

        Any provided arguments overwrite the existing attributes before the state
        is written. The `last_updated` timestamp is refreshed on every dump.
        A failed write is logged and otherwise ignored; the record is an aid
        for later runs and never blocks the conversion itself.
        """
        if status: self.status = status
        if source_dir: self.source_dir = source_dir
        if final_file: self.final_file = final_file
        if last_error_message: self.last_error_message = last_error_message
        if increment_attempt_count: self.attempt_count += 1
        self.last_updated = datetime.now().isoformat()

        data = {
            "item_id": self.item_id,
            "status": self.status,
            "source_dir": self.source_dir,
            "final_file": self.final_file,
            "last_error_message": self.last_error_message,
            "attempt_count": self.attempt_count,
            "last_updated": self.last_updated,
        }
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        except OSError as e:
            logger.error(f"Failed to write progress record {self.path}: {e}")

    def load(self) -> bool:
        """
        Loads the state from the YAML file if it exists.

        Returns:
            True if a record was found and loaded, False otherwise.
        """
        if not self.path.is_file():
            return False
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not read progress record {self.path}: {e}. Starting fresh.")
            return False
        if not isinstance(data, dict):
            logger.warning(f"Progress record {self.path} has unexpected content. Starting fresh.")
            return False

        try:
            attempt_count = int(data.get("attempt_count") or 0)
        except (TypeError, ValueError):
            logger.warning(f"Progress record {self.path} has an invalid attempt count. Starting fresh.")
            return False

        self.status = data.get("status", ITEM_STATUS_PENDING)
        self.source_dir = data.get("source_dir")
        self.final_file = data.get("final_file")
        self.last_error_message = data.get("last_error_message")
        self.attempt_count = attempt_count
        self.last_updated = data.get("last_updated")
        return True
