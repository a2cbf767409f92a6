"""
Merges decoded fragments into the final container with FFmpeg.

The fragments of one item are a video-only and an audio-only fMP4 stream.
FFmpeg takes each as a separate input and copies the streams, without
re-encoding, into one MP4:

    ffmpeg -i <video.m4s> -i <audio.m4s> -c copy <item_id>.mp4
"""
from pathlib import Path
from typing import List, Sequence

import ffmpeg
from loguru import logger

from ..config.common import MERGE_TIMEOUT_SECONDS
from ..domain.exceptions import (
    MergeFailedException,
    NoSegmentsFoundException,
    ToolNotFoundException,
)
from ..utils.ffmpeg_utils import CommandTimeoutError, run_cmd
from ..utils.format_utils import formatted_size

# Lines of FFmpeg stderr quoted in a MergeFailedException
STDERR_TAIL_LINES = 5


def build_merge_command(
    fragments: Sequence[Path],
    output: Path,
    ffmpeg_cmd: str = "ffmpeg",
    overwrite: bool = True,
) -> List[str]:
    """
    Builds the FFmpeg argument list for a stream-copy merge.

    One `-i` pair per fragment, in the given order, followed by `-c copy` and
    the output path. `-y`/`-n` decides up front what happens to an existing
    output, so FFmpeg never stops to ask.
    """
    cmd = [ffmpeg_cmd, "-hide_banner", "-loglevel", "error", "-y" if overwrite else "-n"]
    for fragment in fragments:
        cmd.extend(["-i", str(fragment)])
    cmd.extend(["-c", "copy", str(output)])
    return cmd


def merge_fragments(
    fragments: Sequence[Path],
    output: Path,
    ffmpeg_cmd: str = "ffmpeg",
    overwrite: bool = True,
    timeout: float | None = MERGE_TIMEOUT_SECONDS,
    cmd_log_file_path: Path | None = None,
) -> Path:
    """
    Runs the merge and checks FFmpeg's exit status.

    The existence of `output` is not re-checked here; see `verify_output`.
    If `cmd_log_file_path` is given, the command line is appended to it so a
    failed merge can be re-run by hand.

    Raises:
        NoSegmentsFoundException: If `fragments` is empty. FFmpeg is not started.
        ToolNotFoundException: If FFmpeg cannot be started.
        MergeFailedException: If FFmpeg exits non-zero or exceeds `timeout`.
    """
    if not fragments:
        raise NoSegmentsFoundException(f"Nothing to merge into {output}")

    cmd = build_merge_command(fragments, output, ffmpeg_cmd=ffmpeg_cmd, overwrite=overwrite)
    try:
        result = run_cmd(cmd, show_cmd=True, cmd_log_file_path=cmd_log_file_path, timeout=timeout)
    except CommandTimeoutError as e:
        raise MergeFailedException(f"FFmpeg did not finish within {e.timeout}s for {output}") from e

    if result.returncode != 0:
        stderr_tail = "\n".join((result.stderr or "").strip().splitlines()[-STDERR_TAIL_LINES:])
        raise MergeFailedException(
            f"FFmpeg exited with {result.returncode} for {output}: {stderr_tail or '<no stderr>'}"
        )

    logger.debug(f"Merged {len(fragments)} fragment(s) into {output}")
    return output


def verify_output(output: Path, ffprobe_cmd: str = "ffprobe") -> dict:
    """
    Sanity-checks a merged file: it must exist, be non-empty and contain at least one stream.

    Returns:
        The `ffprobe` result as a dictionary.

    Raises:
        MergeFailedException: If any of the checks fails.
        ToolNotFoundException: If ffprobe is not installed.
    """
    if not output.is_file():
        raise MergeFailedException(f"FFmpeg reported success but {output} does not exist")
    size = output.stat().st_size
    if size == 0:
        raise MergeFailedException(f"FFmpeg reported success but {output} is empty")

    try:
        probe = ffmpeg.probe(str(output), cmd=ffprobe_cmd)
    except FileNotFoundError as e:
        raise ToolNotFoundException(f"{ffprobe_cmd} not found, cannot verify merged output") from e
    except ffmpeg.Error as e:
        stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else str(e)
        raise MergeFailedException(f"ffprobe cannot read {output}: {stderr.strip()}") from e

    streams = probe.get("streams") or []
    if not streams:
        raise MergeFailedException(f"{output} contains no streams")

    codecs = ", ".join(s.get("codec_name", "?") for s in streams)
    logger.debug(f"Verified {output} ({formatted_size(size)}, streams: {codecs})")
    return probe
