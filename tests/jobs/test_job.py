"""任务推导测试：文件名窗口、名称清洗与路径。"""

from pathlib import Path

import pytest

from vidshorts.core import ProcessorConfig
from vidshorts.core.errors import InputError, TimecodeError
from vidshorts.jobs import VideoJob, derive_job_name, discover_videos


def _config(tmp_path: Path, **kwargs) -> ProcessorConfig:
    return ProcessorConfig(temp_dir=tmp_path / ".temp", output_dir=tmp_path / "out", **kwargs)


def test_plain_filename(tmp_path: Path) -> None:
    job = VideoJob.from_path(tmp_path / "input" / "lecture.mp4", _config(tmp_path))

    assert job.name == "lecture"
    assert job.temp_dir == tmp_path / ".temp" / "lecture"
    assert job.output_path == tmp_path / "out" / "lecture.mp4"
    assert job.start_seconds is None
    assert job.duration_seconds is None


def test_window_in_filename_overrides_config(tmp_path: Path) -> None:
    cfg = _config(tmp_path, start_time="00:10:00", end_time="00:20:00")
    job = VideoJob.from_path(tmp_path / "talk-00:00:30-00:01:30.mp4", cfg)

    assert job.name == "talk"
    assert (job.start_time, job.end_time) == ("00:00:30", "00:01:30")
    assert job.start_seconds == 30.0
    assert job.duration_seconds == 60.0


def test_window_only_filename_uses_parent_directory(tmp_path: Path) -> None:
    job = VideoJob.from_path(tmp_path / "keynote" / "00:00:30-00:01:30.mp4", _config(tmp_path))

    assert job.name == "keynote"
    assert job.output_path.name == "keynote.mp4"


def test_config_window_applies_without_filename_window(tmp_path: Path) -> None:
    job = VideoJob.from_path(tmp_path / "clip.mov", _config(tmp_path, start_time="01:00", end_time="02:30"))

    assert job.start_seconds == 60.0
    assert job.duration_seconds == 90.0


def test_end_before_start_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(TimecodeError):
        VideoJob.from_path(tmp_path / "clip.mp4", _config(tmp_path, start_time="00:02:00", end_time="00:01:00"))


def test_default_output_dir_next_to_source(tmp_path: Path) -> None:
    cfg = ProcessorConfig(temp_dir=tmp_path / ".temp")
    job = VideoJob.from_path(tmp_path / "in" / "clip.mp4", cfg)

    assert job.output_path == tmp_path / "in" / "video-to-shorts" / "clip.mp4"


def test_discover_videos_filters_extensions(tmp_path: Path) -> None:
    for name in ("b.MP4", "a.mov", "c.avi", "notes.txt", "d.mkv"):
        (tmp_path / name).write_bytes(b"x")
    (tmp_path / "sub.mp4").mkdir()

    assert [path.name for path in discover_videos(tmp_path)] == ["a.mov", "b.MP4", "c.avi"]


def test_discover_videos_input_errors(tmp_path: Path) -> None:
    with pytest.raises(InputError):
        discover_videos(tmp_path / "missing")

    file_path = tmp_path / "video.mp4"
    file_path.write_bytes(b"x")
    with pytest.raises(InputError):
        discover_videos(file_path)

    empty = tmp_path / "empty"
    empty.mkdir()
    with pytest.raises(InputError):
        discover_videos(empty)


@pytest.mark.parametrize("filename", ["talk-00:00:30-00:01:30.mov", "talk-00:00:30-00:01:30.MP4", "talk-00:00:30-00:01:30.avi"])
def test_window_in_filename_any_extension(tmp_path: Path, filename: str) -> None:
    job = VideoJob.from_path(tmp_path / filename, _config(tmp_path))

    assert job.name == "talk"
    assert job.start_seconds == 30.0
    assert job.duration_seconds == 60.0
    assert job.output_path == tmp_path / "out" / "talk.mp4"


def test_window_must_end_the_filename(tmp_path: Path) -> None:
    job = VideoJob.from_path(tmp_path / "00:00:30-00:01:30.backup.mp4", _config(tmp_path))

    assert job.start_time is None
    assert job.name == "00:00:30-00:01:30.backup"


def test_derive_job_name() -> None:
    assert derive_job_name("in/lecture.mp4") == "lecture"
    assert derive_job_name("in/talk-00:00:30-00:01:30.MOV") == "talk"
    assert derive_job_name("show/00:05:00-00:06:00.mp4") == "show"


def test_assigned_name_drives_paths(tmp_path: Path) -> None:
    job = VideoJob.from_path(tmp_path / "clip.mov", _config(tmp_path), name="clip-2")

    assert job.name == "clip-2"
    assert job.temp_dir == tmp_path / ".temp" / "clip-2"
    assert job.output_path == tmp_path / "out" / "clip-2.mp4"
