import json

import pytest
import yaml

from bilidump.config.common import (
    ITEM_STATUS_CONVERTED,
    ITEM_STATUS_ERROR,
    ITEM_STATUS_MERGING,
    ITEM_STATUS_REMOVED,
    RESULT_CONVERTED,
    RESULT_FAILED,
    RESULT_SKIPPED,
    SPECIAL_OFFSET,
)
from bilidump.domain.exceptions import (
    AssetCopyFailedException,
    DirectoryUnreadableException,
    MergeFailedException,
    MetadataInvalidException,
    MetadataMissingException,
    NoSegmentsFoundException,
    OutputCollisionException,
    OutputExistsException,
    SegmentTooShortException,
    ToolNotFoundException,
)
from bilidump.domain.temp_models import ConvertInfo
from bilidump.pipeline import dump_pipeline
from bilidump.pipeline.dump_pipeline import ItemPipeline, LibraryPipeline
from bilidump.services import merger
from bilidump.services.logging_service import ErrorLog, SuccessLog

from .conftest import FakeFFmpeg, make_args, segment_bytes, write_item


def work_dirs(target_root):
    return list(target_root.glob(".dump_work_*"))


def test_end_to_end_item(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    pipeline = ItemPipeline(target_root, make_args())

    result = pipeline.process(item_dir)

    dest = target_root / "Alice - Season1 - EP1"
    assert result.status == RESULT_CONVERTED
    assert result.final_file == dest / "42.mp4"
    assert fake_ffmpeg.input_sizes == [[100 - SPECIAL_OFFSET, 100 - SPECIAL_OFFSET]]
    merged = (dest / "42.mp4").read_bytes()
    assert sorted([merged[:91], merged[91:]]) == sorted(
        [segment_bytes(1)[SPECIAL_OFFSET:], segment_bytes(2)[SPECIAL_OFFSET:]]
    )
    assert (dest / "cover.jpg").read_bytes() == b"cover"
    assert (dest / "group_cover.jpg").read_bytes() == b"group-cover"
    assert (dest / "videoInfo.json").read_bytes() == (item_dir / ".videoInfo").read_bytes()
    assert work_dirs(target_root) == []
    assert item_dir.exists()

    info = ConvertInfo(42, target_root / ".dump_info_cache")
    assert info.load()
    assert info.status == ITEM_STATUS_CONVERTED
    assert info.attempt_count == 1


def test_merge_command_uses_fragments_not_sources(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    ItemPipeline(target_root, make_args(), ffmpeg_cmd="/opt/bin/ffmpeg").process(item_dir)

    cmd = fake_ffmpeg.calls[0]
    inputs = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-i"]
    assert cmd[0] == "/opt/bin/ffmpeg"
    assert cmd[-3:] == ["-c", "copy", str(target_root / "Alice - Season1 - EP1" / "42.mp4")]
    assert sorted(p.rsplit("/", 1)[-1] for p in inputs) == ["a.m4s", "b.m4s"]
    assert all(str(item_dir) not in p for p in inputs)


def test_autoremove_deletes_source_after_success(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    result = ItemPipeline(target_root, make_args(autoremove=True)).process(item_dir)

    assert result.status == RESULT_CONVERTED
    assert not item_dir.exists()
    info = ConvertInfo(42, target_root / ".dump_info_cache")
    info.load()
    assert info.status == ITEM_STATUS_REMOVED


def test_autoremove_failure_does_not_fail_conversion(source_root, target_root, fake_ffmpeg, monkeypatch):
    item_dir = write_item(source_root, "c_42")

    def refuse(path):
        raise PermissionError("busy")

    monkeypatch.setattr(dump_pipeline.shutil, "rmtree", refuse)
    result = ItemPipeline(target_root, make_args(autoremove=True)).process(item_dir)

    assert result.status == RESULT_CONVERTED
    assert item_dir.exists()


@pytest.mark.parametrize(
    "setup, error_type",
    [
        (lambda d: (d / ".videoInfo").unlink(), MetadataMissingException),
        (lambda d: (d / ".videoInfo").write_text("{broken", encoding="utf-8"), MetadataInvalidException),
        (lambda d: [p.unlink() for p in d.glob("*.m4s")], NoSegmentsFoundException),
        (lambda d: (d / "a.m4s").write_bytes(b"short"), SegmentTooShortException),
        (lambda d: (d / "cover.jpg").unlink(), AssetCopyFailedException),
    ],
)
def test_item_failures_are_reported_not_raised(source_root, target_root, fake_ffmpeg, setup, error_type):
    item_dir = write_item(source_root, "c_42")
    setup(item_dir)

    result = ItemPipeline(target_root, make_args(autoremove=True)).process(item_dir)

    assert result.status == RESULT_FAILED
    assert isinstance(result.error, error_type)
    assert item_dir.exists()
    assert work_dirs(target_root) == []


def test_merge_failure_cleans_fragments_and_records_error(source_root, target_root, monkeypatch):
    monkeypatch.setattr(merger, "run_cmd", FakeFFmpeg(returncode=1, stderr="boom"))
    item_dir = write_item(source_root, "c_42")
    error_log = ErrorLog(target_root / "dump_error")

    result = ItemPipeline(target_root, make_args(autoremove=True), error_log=error_log).process(item_dir)

    assert isinstance(result.error, MergeFailedException)
    assert work_dirs(target_root) == []
    assert item_dir.exists()
    assert str(item_dir) in error_log.log_file_path.read_text(encoding="utf-8")
    info = ConvertInfo(42, target_root / ".dump_info_cache")
    info.load()
    assert info.status == ITEM_STATUS_ERROR
    assert "boom" in info.last_error_message


def test_missing_tool_is_raised(source_root, target_root, monkeypatch):
    def missing(cmd, show_cmd=False, cmd_log_file_path=None, timeout=None):
        raise ToolNotFoundException("ffmpeg")

    monkeypatch.setattr(merger, "run_cmd", missing)
    item_dir = write_item(source_root, "c_42")

    with pytest.raises(ToolNotFoundException):
        ItemPipeline(target_root, make_args()).process(item_dir)
    assert work_dirs(target_root) == []


def test_no_overwrite_leaves_existing_output_untouched(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    ItemPipeline(target_root, make_args(no_overwrite=True)).process(item_dir)
    final_file = target_root / "Alice - Season1 - EP1" / "42.mp4"
    before = final_file.read_bytes()
    entries_before = sorted(p.name for p in final_file.parent.iterdir())

    second = ItemPipeline(target_root, make_args(no_overwrite=True)).process(item_dir)

    assert second.status == RESULT_SKIPPED
    assert isinstance(second.error, OutputExistsException)
    assert len(fake_ffmpeg.calls) == 1
    assert final_file.read_bytes() == before
    assert sorted(p.name for p in final_file.parent.iterdir()) == entries_before
    assert work_dirs(target_root) == []


def test_no_overwrite_replaces_output_of_interrupted_run(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    final_file = target_root / "Alice - Season1 - EP1" / "42.mp4"
    final_file.parent.mkdir(parents=True)
    final_file.write_bytes(b"partial")
    ConvertInfo(42, target_root / ".dump_info_cache").dump(status=ITEM_STATUS_MERGING)

    result = ItemPipeline(target_root, make_args(no_overwrite=True)).process(item_dir)

    assert result.status == RESULT_CONVERTED
    assert final_file.read_bytes() != b"partial"
    assert "-y" in fake_ffmpeg.calls[0]


def test_overwrite_allowed_by_default(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    pipeline = ItemPipeline(target_root, make_args())
    pipeline.process(item_dir)
    result = pipeline.process(item_dir)

    assert result.status == RESULT_CONVERTED
    assert len(fake_ffmpeg.calls) == 2


def test_colliding_items_fail_loudly(source_root, target_root, fake_ffmpeg):
    first = write_item(source_root, "c_1", item_id=1)
    second = write_item(source_root, "c_2", item_id=2)
    pipeline = ItemPipeline(target_root, make_args())

    assert pipeline.process(first).status == RESULT_CONVERTED
    result = pipeline.process(second)

    assert result.status == RESULT_FAILED
    assert isinstance(result.error, OutputCollisionException)
    assert not (target_root / "Alice - Season1 - EP1" / "2.mp4").exists()


def test_verify_output_failure_fails_item(source_root, target_root, fake_ffmpeg, monkeypatch):
    monkeypatch.setattr(merger.ffmpeg, "probe", lambda path, **kwargs: {"streams": []})
    item_dir = write_item(source_root, "c_42")

    result = ItemPipeline(target_root, make_args(verify_output=True)).process(item_dir)

    assert isinstance(result.error, MergeFailedException)


# --- Library pipeline ---


@pytest.fixture
def preflight_ok(monkeypatch):
    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffmpeg", staticmethod(lambda: "ffmpeg"))
    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffprobe", staticmethod(lambda: "ffprobe"))


def test_library_isolates_item_failures(source_root, target_root, fake_ffmpeg, preflight_ok):
    bad = write_item(source_root, "c_1", item_id=1, title="Broken")
    (bad / ".videoInfo").write_text("not json", encoding="utf-8")
    write_item(source_root, "c_2", item_id=2, title="Good", group_title="Good")

    summary = LibraryPipeline(source_root, target_root, make_args()).run()

    assert summary.converted == 1
    assert summary.failed == 1
    assert summary.failed_items == [bad.resolve()]
    assert (target_root / "Alice - Good" / "2.mp4").is_file()

    entries = yaml.safe_load((target_root / "dump_log.yaml").read_text(encoding="utf-8"))
    assert [e["item_id"] for e in entries] == [2]
    assert entries[0]["index"] == 1
    assert "c_1" in (target_root / "dump_error" / "error.txt").read_text(encoding="utf-8")


def test_library_skips_files_hidden_dirs_and_target(source_root, fake_ffmpeg, preflight_ok):
    (source_root / "notes.txt").write_text("x")
    (source_root / ".cache").mkdir()
    write_item(source_root, "c_42")
    target_root = source_root / "output"

    summary = LibraryPipeline(source_root, target_root, make_args()).run()
    again = LibraryPipeline(source_root, target_root, make_args()).run()

    assert [r.item_dir.name for r in summary.results] == ["c_42"]
    assert [r.item_dir.name for r in again.results] == ["c_42"]


def test_library_removes_stale_work_dirs(source_root, target_root, fake_ffmpeg, preflight_ok):
    stale = target_root / ".dump_work_abc123"
    stale.mkdir(parents=True)
    (stale / "a.m4s").write_bytes(b"left over")

    LibraryPipeline(source_root, target_root, make_args()).run()

    assert not stale.exists()


def test_library_unreadable_source_is_fatal(tmp_path, preflight_ok):
    with pytest.raises(DirectoryUnreadableException):
        LibraryPipeline(tmp_path / "missing", tmp_path / "out", make_args()).run()


def test_library_missing_ffmpeg_is_fatal(source_root, target_root, monkeypatch):
    def missing():
        raise ToolNotFoundException("ffmpeg")

    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffmpeg", staticmethod(missing))
    write_item(source_root, "c_42")

    with pytest.raises(ToolNotFoundException):
        LibraryPipeline(source_root, target_root, make_args()).run()
    assert not target_root.exists()


def test_success_log_appends_with_index(tmp_path):
    log = SuccessLog(tmp_path)
    log.write({"item_id": 1})
    log.write({"item_id": 2})

    entries = log.read_entries()
    assert [(e["index"], e["item_id"]) for e in entries] == [(1, 1), (2, 2)]


def test_convert_info_round_trip_and_unfinished(tmp_path):
    info = ConvertInfo(7, tmp_path)
    assert not info.load()
    info.dump(status=ITEM_STATUS_MERGING, source_dir="/src/c_7", increment_attempt_count=True)

    loaded = ConvertInfo(7, tmp_path)
    assert loaded.load()
    assert loaded.unfinished
    assert loaded.source_dir == "/src/c_7"
    assert loaded.attempt_count == 1

    loaded.dump(status=ITEM_STATUS_CONVERTED)
    assert not loaded.unfinished

    (tmp_path / "7.progress.yaml").write_text("- not a mapping", encoding="utf-8")
    assert not ConvertInfo(7, tmp_path).load()


def test_metadata_copy_is_valid_json(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    ItemPipeline(target_root, make_args()).process(item_dir)

    data = json.loads((target_root / "Alice - Season1 - EP1" / "videoInfo.json").read_text(encoding="utf-8"))
    assert data["itemId"] == 42


def test_long_cjk_titles_do_not_stop_the_batch(source_root, target_root, fake_ffmpeg, preflight_ok):
    write_item(source_root, "c_1", item_id=1, title="第" * 100, group_title="季" * 100)
    write_item(source_root, "c_2", item_id=2, title="Good", group_title="Good")

    summary = LibraryPipeline(source_root, target_root, make_args(no_overwrite=True)).run()

    assert summary.converted == 2
    assert (target_root / f"Alice - {'季' * 26} - {'第' * 26}" / "1.mp4").is_file()
    assert (target_root / "Alice - Good" / "2.mp4").is_file()


def test_untranslated_os_error_fails_only_its_item(source_root, target_root, fake_ffmpeg, preflight_ok, monkeypatch):
    real_decode = dump_pipeline.decode_segment

    def decode(segment, dest_dir, overwrite=False):
        if segment.parent.name == "c_1":
            raise OSError(36, "File name too long")
        return real_decode(segment, dest_dir, overwrite)

    monkeypatch.setattr(dump_pipeline, "decode_segment", decode)
    write_item(source_root, "c_1", item_id=1, title="One")
    write_item(source_root, "c_2", item_id=2, title="Two")

    summary = LibraryPipeline(source_root, target_root, make_args()).run()

    results = {r.item_dir.name: r for r in summary.results}
    assert results["c_1"].status == RESULT_FAILED
    assert isinstance(results["c_1"].error, OSError)
    assert results["c_2"].status == RESULT_CONVERTED
    assert work_dirs(target_root) == []


def test_verify_output_checks_ffprobe_before_any_item(source_root, target_root, fake_ffmpeg, monkeypatch):
    def missing():
        raise ToolNotFoundException("ffprobe")

    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffmpeg", staticmethod(lambda: "ffmpeg"))
    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffprobe", staticmethod(missing))
    write_item(source_root, "c_1", item_id=1, title="One")
    write_item(source_root, "c_2", item_id=2, title="Two")

    with pytest.raises(ToolNotFoundException):
        LibraryPipeline(source_root, target_root, make_args(verify_output=True)).run()
    assert fake_ffmpeg.calls == []

    summary = LibraryPipeline(source_root, target_root, make_args()).run()
    assert summary.converted == 2


def test_verify_output_uses_preflight_ffprobe(source_root, target_root, fake_ffmpeg, monkeypatch):
    probed = []

    def probe(path, cmd="ffprobe", **kwargs):
        probed.append(cmd)
        return {"streams": [{"codec_name": "h264"}]}

    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffmpeg", staticmethod(lambda: "ffmpeg"))
    monkeypatch.setattr(dump_pipeline.Modules, "verify_ffprobe", staticmethod(lambda: "/opt/ffmpeg/ffprobe"))
    monkeypatch.setattr(merger.ffmpeg, "probe", probe)
    write_item(source_root, "c_42")

    summary = LibraryPipeline(source_root, target_root, make_args(verify_output=True)).run()

    assert summary.converted == 1
    assert probed == ["/opt/ffmpeg/ffprobe"]


def test_merge_command_is_recorded_per_item(source_root, target_root, fake_ffmpeg):
    item_dir = write_item(source_root, "c_42")
    ItemPipeline(target_root, make_args()).process(item_dir)

    assert fake_ffmpeg.cmd_log_files == [target_root / ".dump_info_cache" / "42.commands.txt"]


def test_corrupt_attempt_count_starts_fresh_record(source_root, target_root, fake_ffmpeg):
    info_dir = target_root / ".dump_info_cache"
    info_dir.mkdir(parents=True)
    (info_dir / "42.progress.yaml").write_text("status: merging\nattempt_count: lots\n", encoding="utf-8")
    assert not ConvertInfo(42, info_dir).load()

    item_dir = write_item(source_root, "c_42")
    result = ItemPipeline(target_root, make_args()).process(item_dir)

    assert result.status == RESULT_CONVERTED
    info = ConvertInfo(42, info_dir)
    info.load()
    assert info.attempt_count == 1
