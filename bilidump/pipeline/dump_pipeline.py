import argparse
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger

# Domain objects
from ..domain.exceptions import (
    AssetCopyFailedException,
    BiliDumpException,
    DirectoryUnreadableException,
    NoSegmentsFoundException,
    OutputException,
    OutputExistsException,
    SegmentIOFailureException,
    SkippedItemException,
    SourceCleanupFailedException,
    ToolNotFoundException,
)
from ..domain.metadata import ItemMetadata, load_metadata
from ..domain.temp_models import ConvertInfo

# Services
from ..services.logging_service import ErrorLog, SuccessLog
from ..services.merger import merge_fragments, verify_output
from ..services.output_planner import OutputLayout, OutputPlanner
from ..services.segment_decoder import decode_segment
from ..services.segment_locator import find_segments
from ..utils.format_utils import formatted_size
from ..utils.module_updater import Modules

# Config
from ..config.common import (
    COMMAND_LOG_SUFFIX,
    CONVERT_INFO_DIR_NAME,
    ERROR_LOG_DIR_NAME,
    ITEM_STATUS_CONVERTED,
    ITEM_STATUS_DECODING,
    ITEM_STATUS_ERROR,
    ITEM_STATUS_MERGING,
    ITEM_STATUS_REMOVED,
    MERGE_TIMEOUT_SECONDS,
    METADATA_COPY_NAME,
    RESULT_CONVERTED,
    RESULT_FAILED,
    RESULT_SKIPPED,
    SEGMENT_EXTENSION,
    WORK_DIR_PREFIX,
)


@dataclass
class ItemResult:
    item_dir: Path
    status: str
    final_file: Optional[Path] = None
    error: Optional[Exception] = None


@dataclass
class RunSummary:
    results: List[ItemResult] = field(default_factory=list)

    def _count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def converted(self) -> int:
        return self._count(RESULT_CONVERTED)

    @property
    def skipped(self) -> int:
        return self._count(RESULT_SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(RESULT_FAILED)

    @property
    def failed_items(self) -> List[Path]:
        return [r.item_dir for r in self.results if r.status == RESULT_FAILED]


class ItemPipeline:
    """
    Converts one cached item directory into `<target_root>/<name>/<item_id>.mp4`.

    Steps, in order: load the sidecar, plan the layout and apply the
    no-overwrite guard, locate the segments, strip their headers into a fresh
    work directory, create the destination, merge with FFmpeg, delete the
    decoded fragments, copy cover art and the sidecar, and finally remove the
    source directory if `autoremove` is set.

    `process` never raises for a single item's failure; it returns an
    `ItemResult` instead. The only exception it lets through is
    `ToolNotFoundException`, because no further item could succeed without FFmpeg.
    An `OSError` that no step translated still only fails its own item.

    Asset copy policy: a cover or sidecar copy failure fails the item. The merged
    file stays where FFmpeg wrote it, but the source directory is kept.
    """

    def __init__(
        self,
        target_root: Path,
        args: argparse.Namespace,
        ffmpeg_cmd: str = "ffmpeg",
        ffprobe_cmd: str = "ffprobe",
        planner: Optional[OutputPlanner] = None,
        success_log: Optional[SuccessLog] = None,
        error_log: Optional[ErrorLog] = None,
    ):
        self.target_root: Path = target_root
        self.args = args
        self.ffmpeg_cmd = ffmpeg_cmd
        self.ffprobe_cmd = ffprobe_cmd
        self.planner = planner or OutputPlanner(target_root)
        self.success_log = success_log
        self.error_log = error_log
        self.info_dir = target_root / CONVERT_INFO_DIR_NAME

        self.autoremove: bool = getattr(args, "autoremove", False)
        self.no_overwrite: bool = getattr(args, "no_overwrite", False)
        self.verify: bool = getattr(args, "verify_output", False)
        self.merge_timeout: Optional[float] = getattr(args, "merge_timeout", MERGE_TIMEOUT_SECONDS)
        self.segment_extension: str = getattr(args, "segment_extension", SEGMENT_EXTENSION)

    def process(self, item_dir: Path) -> ItemResult:
        logger.info(f"Processing {item_dir}")
        convert_info: Optional[ConvertInfo] = None
        layout: Optional[OutputLayout] = None

        try:
            metadata = load_metadata(item_dir)
            logger.info(f"Video Information: {metadata}")

            layout = self.planner.plan(metadata)
            convert_info = ConvertInfo(metadata.item_id, self.info_dir)
            convert_info.load()
            overwrite = self._check_overwrite(layout, convert_info)
            self.planner.claim(layout, metadata.item_id)

            self._convert(item_dir, metadata, layout, convert_info, overwrite)
        except SkippedItemException as e:
            logger.warning(f"Skipped {item_dir}: {e}")
            return ItemResult(item_dir, RESULT_SKIPPED, final_file=layout.final_file if layout else None, error=e)
        except ToolNotFoundException as e:
            if convert_info:
                convert_info.dump(status=ITEM_STATUS_ERROR, last_error_message=str(e))
            raise
        except (BiliDumpException, OSError) as e:
            logger.error(f"Failed to process {item_dir}: {type(e).__name__}: {e}")
            if convert_info:
                convert_info.dump(status=ITEM_STATUS_ERROR, last_error_message=f"{type(e).__name__}: {e}")
            if self.error_log:
                self.error_log.write(
                    f"[{datetime.now().isoformat(timespec='seconds')}] Failed to process: {item_dir}",
                    f"Error: {type(e).__name__}",
                    f"Message: {e}",
                )
            return ItemResult(item_dir, RESULT_FAILED, error=e)

        if self.autoremove:
            try:
                self._remove_source(item_dir)
                convert_info.dump(status=ITEM_STATUS_REMOVED)
            except SourceCleanupFailedException as e:
                logger.warning(str(e))

        if self.success_log:
            self.success_log.write(
                {
                    "item_id": metadata.item_id,
                    "title": metadata.title,
                    "group_title": metadata.group_title,
                    "uname": metadata.uname,
                    "total_size": formatted_size(metadata.total_size),
                    "source_dir": str(item_dir),
                    "output_file": str(layout.final_file),
                    "source_removed": convert_info.status == ITEM_STATUS_REMOVED,
                    "ended_datetime": datetime.now().isoformat(timespec="seconds"),
                }
            )
        logger.success(f"Converted {item_dir.name} -> {layout.final_file}")
        return ItemResult(item_dir, RESULT_CONVERTED, final_file=layout.final_file)

    def _check_overwrite(self, layout: OutputLayout, convert_info: ConvertInfo) -> bool:
        """
        Applies the no-overwrite policy before anything is written.

        Returns:
            Whether FFmpeg may replace an existing output file.

        Raises:
            OutputExistsException: If overwriting is disabled and the final file
                                   exists and is not left over from an unfinished attempt.
        """
        if not self.no_overwrite:
            return True
        try:
            if not layout.final_file.exists():
                return False
        except OSError as e:
            raise OutputException(f"Cannot inspect {layout.final_file}: {e}") from e
        if convert_info.unfinished:
            logger.warning(
                f"{layout.final_file} was left by an unfinished attempt (status '{convert_info.status}'), replacing it."
            )
            return True
        raise OutputExistsException(f"{layout.final_file} already exists")

    def _convert(
        self,
        item_dir: Path,
        metadata: ItemMetadata,
        layout: OutputLayout,
        convert_info: ConvertInfo,
        overwrite: bool,
    ):
        segments = find_segments(item_dir, self.segment_extension)
        if not segments:
            raise NoSegmentsFoundException(f"No '{self.segment_extension}' segments in {item_dir}")

        convert_info.dump(
            status=ITEM_STATUS_DECODING,
            source_dir=str(item_dir),
            final_file=str(layout.final_file),
            increment_attempt_count=True,
        )
        work_dir = self._create_work_dir()
        fragments: List[Path] = []
        try:
            for segment in segments:
                fragments.append(decode_segment(segment, work_dir))

            try:
                layout.create()
            except OSError as e:
                raise OutputException(f"Cannot create {layout.target_dir}: {e}") from e

            convert_info.dump(status=ITEM_STATUS_MERGING)
            merge_fragments(
                fragments,
                layout.final_file,
                ffmpeg_cmd=self.ffmpeg_cmd,
                overwrite=overwrite,
                timeout=self.merge_timeout,
                cmd_log_file_path=self.info_dir / f"{metadata.item_id}{COMMAND_LOG_SUFFIX}",
            )
            if self.verify:
                verify_output(layout.final_file, self.ffprobe_cmd)
        finally:
            self._cleanup_fragments(fragments, work_dir)

        self._copy_assets(metadata, layout)
        convert_info.dump(status=ITEM_STATUS_CONVERTED)

    def _create_work_dir(self) -> Path:
        try:
            self.target_root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix=WORK_DIR_PREFIX, dir=self.target_root))
        except OSError as e:
            raise SegmentIOFailureException(f"Cannot create a work directory in {self.target_root}: {e}") from e

    @staticmethod
    def _cleanup_fragments(fragments: List[Path], work_dir: Path):
        for fragment in fragments:
            try:
                fragment.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to remove temporary file {fragment}: {e}")
        try:
            work_dir.rmdir()
        except OSError as e:
            logger.warning(f"Failed to remove work directory {work_dir}: {e}")

    @staticmethod
    def _copy_to(source: Path, target_dir: Path):
        if not source.name:
            raise AssetCopyFailedException(f"Invalid asset path '{source}'")
        try:
            shutil.copy(source, target_dir / source.name)
        except OSError as e:
            raise AssetCopyFailedException(f"Failed to copy {source} to {target_dir}: {e}") from e

    def _copy_assets(self, metadata: ItemMetadata, layout: OutputLayout):
        logger.info("Copy cover art")
        self._copy_to(Path(metadata.cover_path), layout.target_dir)
        logger.info("Copy group cover art")
        self._copy_to(Path(metadata.group_cover_path), layout.target_dir)

        logger.info("Copy metadata")
        try:
            shutil.copy(metadata.source_path, layout.target_dir / METADATA_COPY_NAME)
        except OSError as e:
            raise AssetCopyFailedException(f"Failed to copy {metadata.source_path}: {e}") from e

    @staticmethod
    def _remove_source(item_dir: Path):
        try:
            shutil.rmtree(item_dir)
        except OSError as e:
            raise SourceCleanupFailedException(f"Failed to remove source directory {item_dir}: {e}") from e
        logger.info(f"Removed source directory {item_dir}")


class LibraryPipeline:
    """
    Walks the client's cache root and converts every item directory, one at a time.

    Before the first item it verifies FFmpeg (and ffprobe when outputs are
    verified), checks that the source root can be listed, creates the target
    root and removes work directories left by a crashed run. Pre-flight
    failures are fatal for the run and raised; item failures are only counted
    in the returned `RunSummary`.
    """

    def __init__(self, source_root: Path, target_root: Path, args: argparse.Namespace):
        self.source_root: Path = source_root.resolve()
        self.target_root: Path = target_root.resolve()
        self.args = args

    def list_item_dirs(self) -> List[Path]:
        """
        Returns the item directories of the source root in enumeration order.

        Hidden directories and the target root (if it lives inside the source
        root) are not items.

        Raises:
            DirectoryUnreadableException: If the source root cannot be listed.
        """
        try:
            entries = list(self.source_root.iterdir())
        except OSError as e:
            raise DirectoryUnreadableException(f"Cannot list source directory {self.source_root}: {e}") from e

        item_dirs = []
        for entry in entries:
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if entry.resolve() == self.target_root:
                logger.debug(f"Skipping target directory {entry} inside the source directory.")
                continue
            item_dirs.append(entry)
        return item_dirs

    def delete_stale_work_dirs(self):
        for stale_dir in self.target_root.glob(f"{WORK_DIR_PREFIX}*"):
            if not stale_dir.is_dir():
                continue
            try:
                shutil.rmtree(stale_dir)
                logger.info(f"Removed stale work directory {stale_dir}")
            except OSError as e:
                logger.warning(f"Failed to remove stale work directory {stale_dir}: {e}")

    def run(self) -> RunSummary:
        logger.info(f"Source directory: {self.source_root}")
        logger.info(f"Target directory: {self.target_root}")

        ffmpeg_cmd = Modules.verify_ffmpeg()
        ffprobe_cmd = Modules.verify_ffprobe() if getattr(self.args, "verify_output", False) else "ffprobe"
        item_dirs = self.list_item_dirs()

        try:
            self.target_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryUnreadableException(f"Cannot create target directory {self.target_root}: {e}") from e
        self.delete_stale_work_dirs()

        item_pipeline = ItemPipeline(
            self.target_root,
            self.args,
            ffmpeg_cmd=ffmpeg_cmd,
            ffprobe_cmd=ffprobe_cmd,
            success_log=SuccessLog(self.target_root),
            error_log=ErrorLog(self.target_root / ERROR_LOG_DIR_NAME),
        )

        summary = RunSummary()
        logger.info(f"Found {len(item_dirs)} item(s) to process.")
        for item_dir in item_dirs:
            summary.results.append(item_pipeline.process(item_dir))

        logger.info(
            f"Finished: {summary.converted} converted, {summary.skipped} skipped, {summary.failed} failed."
        )
        for failed_dir in summary.failed_items:
            logger.warning(f"Failed item: {failed_dir}")
        return summary
