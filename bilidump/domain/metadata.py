import json
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from .exceptions import MetadataInvalidException, MetadataMissingException
from ..config.common import VIDEO_METADATA_FILE
from ..utils.format_utils import format_timestamp, formatted_size


# Sidecar key -> (attribute name, expected type, unsigned)
_FIELDS = (
    ("uname", "uname", str, False),
    ("title", "title", str, False),
    ("groupTitle", "group_title", str, False),
    ("pubdate", "pubdate", int, False),
    ("updateTime", "update_time", int, False),
    ("totalSize", "total_size", int, True),
    ("itemId", "item_id", int, True),
    ("coverPath", "cover_path", str, False),
    ("groupCoverPath", "group_cover_path", str, False),
)


@dataclass(frozen=True)
class ItemMetadata:
    """
    The parsed sidecar descriptor of one cached item.

    `item_id` names the merged file; `uname`, `group_title` and `title` name the
    directory it is written to. `source_path` is the sidecar the record was read
    from, so that it can be copied verbatim next to the output.
    """

    uname: str
    title: str
    group_title: str
    pubdate: int
    update_time: int
    total_size: int
    item_id: int
    cover_path: str
    group_cover_path: str
    source_path: Path

    def __str__(self) -> str:
        return (
            f"{self.item_id} Title: {self.title}, UP: {self.uname}, "
            f"size {formatted_size(self.total_size)}, update at {format_timestamp(self.pubdate)}"
        )


def parse_metadata(raw: bytes, source_path: Path) -> ItemMetadata:
    """
    Turns the raw bytes of a sidecar into an `ItemMetadata`.

    Unknown keys are ignored. Every known key is required and type checked;
    booleans are rejected where integers are expected, and the size and id
    must not be negative.

    Raises:
        MetadataInvalidException: If the bytes are not a JSON object with all required fields.
    """
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MetadataInvalidException(f"{source_path} is not valid UTF-8: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MetadataInvalidException(f"{source_path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MetadataInvalidException(
            f"{source_path} must hold a JSON object, got {type(data).__name__}"
        )

    values = {}
    for key, attr, expected_type, unsigned in _FIELDS:
        if key not in data:
            raise MetadataInvalidException(f"{source_path} is missing required field '{key}'")
        value = data[key]
        # bool is a subclass of int
        if isinstance(value, bool) or not isinstance(value, expected_type):
            raise MetadataInvalidException(
                f"{source_path}: field '{key}' must be {expected_type.__name__}, got {type(value).__name__}"
            )
        if unsigned and value < 0:
            raise MetadataInvalidException(f"{source_path}: field '{key}' must not be negative")
        values[attr] = value

    return ItemMetadata(source_path=source_path, **values)


def load_metadata(item_dir: Path) -> ItemMetadata:
    """
    Reads and parses the sidecar descriptor of an item directory.

    Args:
        item_dir: The cached item's directory.

    Returns:
        The parsed `ItemMetadata`.

    Raises:
        MetadataMissingException: If the sidecar does not exist or cannot be read.
        MetadataInvalidException: If the sidecar's content is not a valid descriptor.
    """
    metafile = item_dir / VIDEO_METADATA_FILE
    try:
        raw = metafile.read_bytes()
    except FileNotFoundError as e:
        raise MetadataMissingException(f"No {VIDEO_METADATA_FILE} in {item_dir}") from e
    except OSError as e:
        raise MetadataMissingException(f"Cannot read {metafile}: {e}") from e

    metadata = parse_metadata(raw, metafile)
    logger.debug(f"Loaded metadata from {metafile}: {metadata!r}")
    return metadata
