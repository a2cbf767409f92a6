"""
Derives where a converted item is written.

Layout of the target root:

    <target_root>/
        <owner> - <group title> - <title>/    (or "<owner> - <title>" if both titles match)
            <item_id>.mp4
            <cover image>
            <group cover image>
            videoInfo.json

Name components come straight from the sidecar, so they are passed through
`sanitize_name` before being used in a path. The substitution table is:

    < > : " / \\ | ? *          -> "_"
    control characters (0x00-0x1F, 0x7F) -> "_"
    components longer than 80 UTF-8 bytes are cut at the last whole character
    leading/trailing whitespace and trailing dots are removed
    an empty result becomes "_"

The table is the union of what Windows, macOS and Linux reject, so the same
item gets the same directory name on every platform. The length cap keeps the
joined directory name under the 255-byte limit even for CJK titles, where
every character takes three bytes.
"""
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from loguru import logger

from ..config.common import CONTAINER_EXTENSION, METADATA_COPY_NAME, NAME_COMPONENT_MAX_BYTES
from ..domain.exceptions import OutputCollisionException, OutputException
from ..domain.metadata import ItemMetadata

SANITIZE_REPLACEMENT = "_"
_UNSAFE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cuts `text` to at most `max_bytes` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def sanitize_name(component: str, max_bytes: int = NAME_COMPONENT_MAX_BYTES) -> str:
    """Maps a free-text name component to one that is safe as a path segment."""
    cleaned = _UNSAFE_CHARS_RE.sub(SANITIZE_REPLACEMENT, component)
    cleaned = truncate_utf8(cleaned, max_bytes)
    cleaned = cleaned.strip().rstrip(".").rstrip()
    return cleaned or SANITIZE_REPLACEMENT


def target_dir_name(metadata: ItemMetadata) -> str:
    """
    Returns the destination directory name for an item.

    The group title is only included when it differs from the item title;
    single-part videos carry the same value in both fields.
    """
    uname = sanitize_name(metadata.uname)
    title = sanitize_name(metadata.title)
    if metadata.group_title != metadata.title:
        return f"{uname} - {sanitize_name(metadata.group_title)} - {title}"
    return f"{uname} - {title}"


def final_file_name(metadata: ItemMetadata, extension: str = CONTAINER_EXTENSION) -> str:
    return f"{metadata.item_id}.{extension}"


@dataclass(frozen=True)
class OutputLayout:
    dir_name: str
    target_dir: Path
    final_file: Path

    def create(self) -> Path:
        """Creates the destination directory. An existing directory is fine."""
        self.target_dir.mkdir(parents=True, exist_ok=True)
        return self.target_dir


class OutputPlanner:
    """
    Plans output layouts under one target root and refuses name collisions.

    The planner remembers which item claimed each directory name during the
    run. A second, different item computing the same name is an error, and so
    is a directory left by an earlier run whose `videoInfo.json` belongs to
    another item.
    """

    def __init__(self, target_root: Path, extension: str = CONTAINER_EXTENSION):
        self.target_root = target_root
        self.extension = extension
        self._claimed: Dict[str, int] = {}

    def plan(self, metadata: ItemMetadata) -> OutputLayout:
        dir_name = target_dir_name(metadata)
        target_dir = self.target_root / dir_name
        layout = OutputLayout(
            dir_name=dir_name,
            target_dir=target_dir,
            final_file=target_dir / final_file_name(metadata, self.extension),
        )
        logger.debug(f"Planned output for item {metadata.item_id}: {layout.final_file}")
        return layout

    def claim(self, layout: OutputLayout, item_id: int):
        """
        Reserves `layout`'s directory for `item_id`.

        Raises:
            OutputCollisionException: If another item already owns the directory.
            OutputException: If the directory cannot be inspected.
        """
        owner = self._claimed.get(layout.dir_name)
        if owner is not None and owner != item_id:
            raise OutputCollisionException(
                f"Items {owner} and {item_id} both map to '{layout.dir_name}'"
            )

        existing_owner = self._read_existing_owner(layout.target_dir)
        if existing_owner is not None and existing_owner != item_id:
            raise OutputCollisionException(
                f"'{layout.target_dir}' already holds item {existing_owner}, refusing to write item {item_id}"
            )

        self._claimed[layout.dir_name] = item_id

    @staticmethod
    def _read_existing_owner(target_dir: Path) -> int | None:
        metadata_copy = target_dir / METADATA_COPY_NAME
        try:
            if not metadata_copy.is_file():
                return None
        except OSError as e:
            raise OutputException(f"Cannot inspect {target_dir}: {e}") from e
        try:
            data = json.loads(metadata_copy.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Cannot read {metadata_copy} to check ownership: {e}")
            return None
        item_id = data.get("itemId") if isinstance(data, dict) else None
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            return None
        return item_id
