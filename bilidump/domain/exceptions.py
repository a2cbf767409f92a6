"""
Defines custom exception types for bilidump.

These exceptions allow for specific and expressive error handling throughout
the dump pipeline. Instead of catching a generic `Exception`, the item pipeline
catches `BiliDumpException` subclasses, records them against the item being
processed, and moves on to the next item.

All custom exceptions inherit from the base `BiliDumpException`.
"""


class BiliDumpException(Exception):
    """Base class for all custom exceptions in bilidump."""

    pass


# --- Metadata Exceptions ---
class MetadataException(BiliDumpException):
    """Base class for errors raised while reading an item's sidecar descriptor."""

    pass


class MetadataMissingException(MetadataException):
    """Raised when the sidecar descriptor does not exist or cannot be read."""

    pass


class MetadataInvalidException(MetadataException):
    """
    Raised when the sidecar descriptor cannot be turned into an `ItemMetadata`.

    Covers bytes that are not UTF-8, text that is not JSON, and JSON that lacks
    a required field or carries it with the wrong type.
    """

    pass


# --- Segment Exceptions ---
class SegmentException(BiliDumpException):
    """Base class for errors raised while locating or decoding cached segments."""

    pass


class DirectoryUnreadableException(SegmentException):
    """Raised when a directory itself cannot be enumerated."""

    pass


class NoSegmentsFoundException(SegmentException):
    """
    Raised when an item directory holds no segment files.

    The merge tool is never started with zero inputs.
    """

    pass


class SegmentTooShortException(SegmentException):
    """Raised when a segment is shorter than the client header it should carry."""

    pass


class SegmentIOFailureException(SegmentException):
    """Raised when a segment cannot be read or its decoded fragment cannot be written."""

    pass


# --- Merge Exceptions ---
class MergeException(BiliDumpException):
    """Base class for errors raised around the external FFmpeg merge."""

    pass


class ToolNotFoundException(MergeException):
    """
    Raised when the FFmpeg executable cannot be started.

    This is fatal for the whole run: no item can be converted without it.
    """

    pass


class MergeFailedException(MergeException):
    """Raised when FFmpeg exits with a non-zero status, times out, or leaves no usable output."""

    pass


# --- Output Exceptions ---
class OutputException(BiliDumpException):
    """Base class for errors raised while writing into the destination directory."""

    pass


class AssetCopyFailedException(OutputException):
    """Raised when the cover art or the sidecar copy cannot be placed next to the merged file."""

    pass


class OutputCollisionException(OutputException):
    """
    Raised when two different items compute the same destination directory.

    Two items sharing a directory would overwrite each other's covers and
    sidecar copy, so the second one is refused instead.
    """

    pass


class SkippedItemException(BiliDumpException):
    """
    Raised when an item is intentionally skipped and requires no further processing.

    This is not strictly an error but a control flow mechanism. The pipeline
    reports the item as skipped rather than failed.
    """

    pass


class OutputExistsException(SkippedItemException):
    """Raised when the final file already exists and overwriting is disabled."""

    pass


# --- Cleanup Exceptions ---
class CleanupException(BiliDumpException):
    """Base class for errors raised while removing intermediate or source files."""

    pass


class SourceCleanupFailedException(CleanupException):
    """
    Raised when the source item directory cannot be removed after a conversion.

    The pipeline logs it as a warning; the conversion itself still counts as done.
    """

    pass
