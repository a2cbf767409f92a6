import argparse
import json
import subprocess
from pathlib import Path

import pytest

from bilidump.services import merger

SEGMENT_SIZE = 100


def segment_bytes(seed: int, size: int = SEGMENT_SIZE) -> bytes:
    return bytes((seed + i) % 256 for i in range(size))


def write_item(
    root: Path,
    name: str,
    item_id: int = 42,
    title: str = "EP1",
    group_title: str = "Season1",
    uname: str = "Alice",
    segments: dict | None = None,
    with_covers: bool = True,
    **overrides,
) -> Path:
    """Creates a cached item directory the way the client lays it out."""
    item_dir = root / name
    item_dir.mkdir(parents=True)
    cover = item_dir / "cover.jpg"
    group_cover = item_dir / "group_cover.jpg"
    if with_covers:
        cover.write_bytes(b"cover")
        group_cover.write_bytes(b"group-cover")
    info = {
        "uname": uname,
        "title": title,
        "groupTitle": group_title,
        "pubdate": 1700000000,
        "updateTime": 1700000100,
        "totalSize": 1048576,
        "itemId": item_id,
        "coverPath": str(cover),
        "groupCoverPath": str(group_cover),
    }
    info.update(overrides)
    (item_dir / ".videoInfo").write_text(json.dumps(info), encoding="utf-8")
    if segments is None:
        segments = {"a.m4s": segment_bytes(1), "b.m4s": segment_bytes(2)}
    for filename, content in segments.items():
        (item_dir / filename).write_bytes(content)
    return item_dir


def make_args(**overrides) -> argparse.Namespace:
    values = dict(
        autoremove=False,
        no_overwrite=False,
        verify_output=False,
        merge_timeout=60,
        strict=False,
        log_level="INFO",
    )
    values.update(overrides)
    return argparse.Namespace(**values)


class FakeFFmpeg:
    """Stands in for `run_cmd` in the merger: concatenates the inputs into the output."""

    def __init__(self, returncode: int = 0, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []
        self.input_sizes = []
        self.cmd_log_files = []

    def __call__(self, cmd, show_cmd=False, cmd_log_file_path=None, timeout=None):
        self.calls.append(list(cmd))
        self.cmd_log_files.append(cmd_log_file_path)
        inputs = [Path(cmd[i + 1]) for i, arg in enumerate(cmd) if arg == "-i"]
        self.input_sizes.append([p.stat().st_size for p in inputs])
        if self.returncode == 0:
            output = Path(cmd[-1])
            output.write_bytes(b"".join(p.read_bytes() for p in inputs))
        return subprocess.CompletedProcess(cmd, self.returncode, "", self.stderr)


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    fake = FakeFFmpeg()
    monkeypatch.setattr(merger, "run_cmd", fake)
    return fake


@pytest.fixture
def source_root(tmp_path):
    root = tmp_path / "bilibili"
    root.mkdir()
    return root


@pytest.fixture
def target_root(tmp_path):
    return tmp_path / "output"
