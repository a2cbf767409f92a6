"""
Common configuration settings used throughout the application.

This module contains globally shared configuration settings and constants that are
used across the whole dumper. It centralizes parameters for logging, the layout of
the client's cache, the naming of output files, and the bookkeeping files that the
pipeline writes into the target directory.
It also handles the loading of user-specific configurations from an external
YAML file, allowing for easy customization without modifying the source code.
"""
from pathlib import Path
import yaml
from loguru import logger

# --- User-Defined Path Configuration ---
# This block loads user-specific paths from a 'config.user.yaml' file located
# at the project root. This allows users to point the dumper at their cache and
# output folders, and at a specific FFmpeg build, without hardcoding paths.

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
USER_CONFIG_PATH = PROJECT_ROOT / "config.user.yaml"

# The directory where the Bilibili client keeps its offline cache. Every
# subdirectory is one cached item.
DEFAULT_SOURCE_DIR: Path = Path.home() / "Movies" / "bilibili"

# The directory where converted items are written.
DEFAULT_TARGET_DIR: Path = Path.home() / "Movies" / "output"

# The directory containing the FFmpeg executable. This is loaded from
# 'config.user.yaml'. If not provided or None, the application assumes the
# executable is available in the system's PATH.
MODULE_PATH: Path | None = None

if USER_CONFIG_PATH.is_file():
    try:
        with USER_CONFIG_PATH.open("r", encoding="utf-8") as f:
            user_config = yaml.safe_load(f)
        if user_config and "paths" in user_config:
            paths_config = user_config.get("paths") or {}
            ffmpeg_dir_str = paths_config.get("ffmpeg_dir")
            source_dir_str = paths_config.get("source_dir")
            target_dir_str = paths_config.get("target_dir")

            if ffmpeg_dir_str:
                MODULE_PATH = Path(ffmpeg_dir_str).expanduser()
            if source_dir_str:
                DEFAULT_SOURCE_DIR = Path(source_dir_str).expanduser()
            if target_dir_str:
                DEFAULT_TARGET_DIR = Path(target_dir_str).expanduser()
    except Exception as e:
        logger.warning(f"Could not load or parse '{USER_CONFIG_PATH}': {e}")
else:
    logger.debug(f"User config '{USER_CONFIG_PATH}' not found. Using built-in defaults.")


# --- Logging Configuration ---

# The format string for the Loguru logger.
LOGGER_FORMAT = (
    "<green>{time:MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# Filename of the YAML log that collects one entry per converted item.
SUCCESS_LOG_FILE_NAME = "dump_log.yaml"

# Directory (inside the target root) holding the plain-text error log.
ERROR_LOG_DIR_NAME = "dump_error"


# --- Client Cache Layout ---

# The client prepends this many bytes to every cached segment. They must be
# stripped before the remainder is a valid fMP4 fragment.
SPECIAL_OFFSET = 9

# Extension token of the cached segment files (one for video, one for audio).
SEGMENT_EXTENSION = "m4s"

# Name of the sidecar descriptor stored in every item directory.
VIDEO_METADATA_FILE = ".videoInfo"


# --- Output Layout ---

# Container extension of the merged file. The final file is `<item_id>.<ext>`.
CONTAINER_EXTENSION = "mp4"

# Name under which the sidecar descriptor is copied next to the merged file.
METADATA_COPY_NAME = "videoInfo.json"

# Upper bound, in UTF-8 bytes, of each name component (owner, group title,
# title) in the destination directory name. Three components plus separators
# stay below the 255-byte file name limit of common filesystems.
NAME_COMPONENT_MAX_BYTES = 80

# Prefix of the per-run work directories holding decoded fragments. Leftovers
# from a crashed run are removed at the start of the next one.
WORK_DIR_PREFIX = ".dump_work_"

# Directory (inside the target root) holding the per-item progress records.
CONVERT_INFO_DIR_NAME = ".dump_info_cache"

# Suffix of the per-item file (next to the progress record) that collects the
# FFmpeg command lines run for that item.
COMMAND_LOG_SUFFIX = ".commands.txt"


# --- External Tool ---

# Upper bound for a single FFmpeg merge. A hung process fails only its item.
MERGE_TIMEOUT_SECONDS = 3600

# Read/write block size used when stripping segment headers.
COPY_CHUNK_SIZE = 1024 * 1024


# --- Item Status Constants ---
# These represent the states of a single item conversion. They are persisted
# by `ConvertInfo` so that progress never has to be guessed from directory
# contents.

ITEM_STATUS_PENDING = "pending"  # Record created, nothing mutated yet.
ITEM_STATUS_DECODING = "decoding"  # Segment headers are being stripped into the work dir.
ITEM_STATUS_MERGING = "merging"  # FFmpeg is writing the final file.
ITEM_STATUS_CONVERTED = "converted"  # Final file and assets are in place.
ITEM_STATUS_REMOVED = "removed"  # Converted, and the source directory was deleted.
ITEM_STATUS_ERROR = "error"  # The last attempt failed.

# Statuses meaning the last attempt on an item did not finish, so any output
# file it left behind cannot be trusted.
ITEM_STATUSES_UNFINISHED = (ITEM_STATUS_DECODING, ITEM_STATUS_MERGING, ITEM_STATUS_ERROR)


# --- Result Constants ---
RESULT_CONVERTED = "converted"
RESULT_SKIPPED = "skipped"
RESULT_FAILED = "failed"
