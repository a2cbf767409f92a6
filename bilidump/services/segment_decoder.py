"""
Strips the client header from cached segments.

The Bilibili client writes each cached `.m4s` segment with a fixed-size header
of `SPECIAL_OFFSET` bytes in front of an otherwise standard fMP4 fragment.
Removing exactly those bytes is all it takes to make the segment readable by
FFmpeg again. Nothing beyond the byte offset is inspected here.
"""
import shutil
from pathlib import Path

from loguru import logger

from ..config.common import COPY_CHUNK_SIZE, SPECIAL_OFFSET
from ..domain.exceptions import SegmentIOFailureException, SegmentTooShortException


def decode_segment(segment: Path, dest_dir: Path, overwrite: bool = False) -> Path:
    """
    Writes `dest_dir/<segment name>` with the segment's bytes from `SPECIAL_OFFSET` on.

    Args:
        segment: The cached segment file.
        dest_dir: Directory receiving the decoded fragment. It must exist.
        overwrite: Replace an existing fragment of the same name instead of failing.

    Returns:
        The path of the decoded fragment.

    Raises:
        SegmentTooShortException: If the segment is shorter than the header. Nothing is written.
        SegmentIOFailureException: If the segment cannot be read, or the fragment
                                   cannot be written (including when it already
                                   exists and `overwrite` is False).
    """
    output = dest_dir / segment.name
    mode = "wb" if overwrite else "xb"

    try:
        with segment.open("rb") as src:
            header = src.read(SPECIAL_OFFSET)
            if len(header) < SPECIAL_OFFSET:
                raise SegmentTooShortException(
                    f"{segment} is {len(header)} bytes, shorter than the {SPECIAL_OFFSET}-byte header"
                )
            try:
                with output.open(mode) as dst:
                    shutil.copyfileobj(src, dst, COPY_CHUNK_SIZE)
            except FileExistsError as e:
                raise SegmentIOFailureException(f"Decoded fragment already exists: {output}") from e
            except OSError:
                # do not leave a truncated fragment behind
                output.unlink(missing_ok=True)
                raise
    except OSError as e:
        raise SegmentIOFailureException(f"Failed to decode {segment} into {output}: {e}") from e

    logger.trace(f"Decoded {segment.name} -> {output}")
    return output
