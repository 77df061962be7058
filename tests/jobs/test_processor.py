"""单视频处理流程测试：阶段顺序、输出路径、临时目录清理与仅重构模式。"""

import io
import json
from pathlib import Path
from typing import List

import ffmpeg
import pytest

from vidshorts.analyze import FrameClassifier
from vidshorts.core import EventChannels, Frame, PipelineConfig, ProcessorConfig, Stage
from vidshorts.core.errors import EncodeError
from vidshorts.core.events import CompleteEvent, FrameSkippedEvent, ProgressEvent
from vidshorts.jobs import VideoProcessor, job_workspace


class FakeProcess:
    def __init__(self, returncode: int = 0):
        self.stdout = io.BytesIO(b"out_time_ms=1000000\nprogress=end\n")
        self.stderr = io.BytesIO(b"")
        self.returncode = returncode

    def kill(self):
        self.returncode = -9

    def wait(self):
        return self.returncode


class DummyResponse:
    def raise_for_status(self):
        return None

    def json(self):
        arguments = json.dumps({"action": "keep", "reason": "fine", "confidence": 1.0})
        return {"choices": [{"message": {"tool_calls": [{"function": {"name": "analyze_frame", "arguments": arguments}}]}}]}


class DummyClient:
    def __init__(self, *_, **__):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def post(self, *_, **__):
        return DummyResponse()


def _config(tmp_path: Path, **processor) -> PipelineConfig:
    return PipelineConfig(
        processor=ProcessorConfig(temp_dir=tmp_path / ".temp", output_dir=tmp_path / "out", frame_interval=1, **processor)
    )


def _no_audio(*_, **__) -> bool:
    return False


def _fake_sampler(calls: List[dict]):
    def sampler(video_path, output_dir, interval, **kwargs):
        calls.append({"video_path": video_path, "output_dir": output_dir, "interval": interval, **kwargs})
        frames = []
        for ordinal in (1, 2, 3):
            path = Path(output_dir) / f"frame-{ordinal}.jpg"
            path.write_bytes(b"jpg")
            frames.append(Frame(ordinal=ordinal, timestamp=(ordinal - 1) * interval, path=path))
        return frames

    return sampler


def _stage_sequence(events) -> List[Stage]:
    stages: List[Stage] = []
    for event in events:
        if not stages or stages[-1] is not event.stage:
            stages.append(event.stage)
    return stages


def test_process_video_end_to_end(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("vidshorts.analyze.classifier.httpx.Client", DummyClient)
    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", lambda *_, **__: FakeProcess())
    channels = EventChannels()
    received = []
    channels.processing.subscribe(received.append)
    calls: List[dict] = []

    processor = VideoProcessor(
        _config(tmp_path),
        classifier=FrameClassifier({"api_key": "sk-test"}),
        sampler=_fake_sampler(calls),
        audio_probe=_no_audio,
        channels=channels,
    )
    output = processor.process_video(tmp_path / "input" / "demo.mp4")

    assert output == tmp_path / "out" / "demo.mp4"
    assert _stage_sequence(received) == [
        Stage.INIT,
        Stage.CREATING_DIRECTORIES,
        Stage.EXTRACTING_FRAMES,
        Stage.ANALYZING_FRAMES,
        Stage.APPLYING_MODIFICATIONS,
        Stage.COMPILING_VIDEO,
        Stage.CLEANUP,
        Stage.COMPLETE,
    ]
    analyzing = [e for e in received if isinstance(e, ProgressEvent) and e.stage is Stage.ANALYZING_FRAMES]
    assert analyzing and analyzing[-1].progress.percentage == 100.0
    complete = received[-1]
    assert isinstance(complete, CompleteEvent)
    assert complete.output_path == tmp_path / "out" / "demo.mp4"
    assert all(event.video == "demo" for event in received)
    assert calls[0]["interval"] == 1
    assert not (tmp_path / ".temp" / "demo").exists()


def test_process_video_cleans_up_on_encode_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("vidshorts.analyze.classifier.httpx.Client", DummyClient)
    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", lambda *_, **__: FakeProcess(returncode=1))
    channels = EventChannels()
    received = []
    channels.processing.subscribe(received.append)

    processor = VideoProcessor(
        _config(tmp_path),
        classifier=FrameClassifier({"api_key": "sk-test"}),
        sampler=_fake_sampler([]),
        audio_probe=_no_audio,
        channels=channels,
    )
    with pytest.raises(EncodeError):
        processor.process_video(tmp_path / "demo.mp4")

    assert not (tmp_path / ".temp" / "demo").exists()
    stages = [event.stage for event in received]
    assert Stage.CLEANUP in stages
    assert Stage.COMPLETE not in stages


def test_reframe_only_without_classifier(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    captured = {}

    def fake_run_async(stream, **kwargs):
        captured["args"] = ffmpeg.get_args(stream)
        return FakeProcess()

    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", fake_run_async)
    calls: List[dict] = []
    channels = EventChannels()
    received = []
    channels.processing.subscribe(received.append)

    processor = VideoProcessor(_config(tmp_path), sampler=_fake_sampler(calls), channels=channels)
    processor.process_video(tmp_path / "clip-00:00:10-00:00:40.mp4")

    assert calls == []
    stages = {event.stage for event in received}
    assert Stage.EXTRACTING_FRAMES not in stages
    assert Stage.ANALYZING_FRAMES not in stages
    args = captured["args"]
    assert args[args.index("-ss") + 1] == "10"
    assert args[args.index("-t") + 1] == "30"
    assert "trim" not in args[args.index("-filter_complex") + 1]
    maps = [args[idx + 1] for idx, arg in enumerate(args) if arg == "-map"]
    assert "0:a?" in maps
    assert any(event.data.get("fallback") for event in received if hasattr(event, "data"))


def test_low_confidence_frames_emit_skip_notices(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    class LowConfidenceResponse(DummyResponse):
        def json(self):
            arguments = json.dumps({"action": "speed_up", "reason": "maybe", "confidence": 0.4})
            return {"choices": [{"message": {"tool_calls": [{"function": {"name": "analyze_frame", "arguments": arguments}}]}}]}

    class LowConfidenceClient(DummyClient):
        def post(self, *_, **__):
            return LowConfidenceResponse()

    monkeypatch.setattr("vidshorts.analyze.classifier.httpx.Client", LowConfidenceClient)
    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", lambda *_, **__: FakeProcess())
    channels = EventChannels()
    received = []
    channels.processing.subscribe(received.append)

    processor = VideoProcessor(
        _config(tmp_path, save_actions=True),
        classifier=FrameClassifier({"api_key": "sk-test"}),
        sampler=_fake_sampler([]),
        audio_probe=_no_audio,
        channels=channels,
    )
    processor.process_video(tmp_path / "demo.mp4")

    skipped = [event for event in received if isinstance(event, FrameSkippedEvent)]
    assert [event.frame for event in skipped] == [1, 2, 3]
    saved = json.loads((tmp_path / "out" / "demo.actions.json").read_text(encoding="utf-8"))
    assert list(saved) == ["0.0", "1.0", "2.0"]


def test_job_workspace_removes_dir_on_error(tmp_path: Path) -> None:
    channels = EventChannels()
    target = tmp_path / "work"

    with pytest.raises(RuntimeError):
        with job_workspace(target, channels.bind("x")) as workdir:
            (workdir / "frame-1.jpg").write_bytes(b"jpg")
            raise RuntimeError("boom")

    assert not target.exists()


def test_segments_carry_audio_when_source_has_it(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("vidshorts.analyze.classifier.httpx.Client", DummyClient)
    captured = {}

    def fake_run_async(stream, **kwargs):
        captured["args"] = ffmpeg.get_args(stream)
        return FakeProcess()

    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", fake_run_async)
    probed = []

    def audio_probe(path, *, cmd):
        probed.append((path, cmd))
        return True

    processor = VideoProcessor(
        _config(tmp_path),
        classifier=FrameClassifier({"api_key": "sk-test"}),
        sampler=_fake_sampler([]),
        audio_probe=audio_probe,
    )
    processor.process_video(tmp_path / "demo.mp4")

    assert probed == [(tmp_path / "demo.mp4", "ffprobe")]
    args = captured["args"]
    graph = args[args.index("-filter_complex") + 1]
    assert "[0:a]atrim=start=0:end=1,asetpts=PTS-STARTPTS[a0]" in graph
    assert graph.endswith("concat=n=3:v=1:a=1[outv]")


def test_audio_probe_failure_warns_and_encodes_silently(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr("vidshorts.analyze.classifier.httpx.Client", DummyClient)
    captured = {}

    def fake_run_async(stream, **kwargs):
        captured["args"] = ffmpeg.get_args(stream)
        return FakeProcess()

    def broken_probe(*_, **__):
        raise ffmpeg.Error("ffprobe", b"", b"moov atom not found")

    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", fake_run_async)
    channels = EventChannels()
    warnings = []
    channels.error.subscribe(warnings.append)

    processor = VideoProcessor(
        _config(tmp_path),
        classifier=FrameClassifier({"api_key": "sk-test"}),
        sampler=_fake_sampler([]),
        audio_probe=broken_probe,
        channels=channels,
    )
    output = processor.process_video(tmp_path / "demo.mp4")

    assert output == tmp_path / "out" / "demo.mp4"
    assert [event.level for event in warnings] == ["warning"]
    assert warnings[0].data["error"] == "moov atom not found"
    args = captured["args"]
    assert "[0:a]" not in args[args.index("-filter_complex") + 1]


def test_colliding_job_names_get_distinct_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    outputs = []

    def fake_run_async(stream, **kwargs):
        args = ffmpeg.get_args(stream)
        outputs.append(args[args.index("-progress") - 1])
        return FakeProcess()

    monkeypatch.setattr("vidshorts.export.encoder.ffmpeg.run_async", fake_run_async)
    sources = [
        tmp_path / "clip.mp4",
        tmp_path / "clip.mov",
        tmp_path / "show" / "00:00:00-00:01:00.mp4",
        tmp_path / "show" / "00:05:00-00:06:00.mp4",
    ]

    processor = VideoProcessor(_config(tmp_path))
    names = processor.assign_names(sources)

    assert list(names.values()) == ["clip", "clip-2", "show", "show-2"]
    jobs = [processor.build_job(source) for source in reversed(sources)]
    assert [job.name for job in jobs] == ["show-2", "show", "clip-2", "clip"]
    assert len({job.temp_dir for job in jobs}) == 4
    assert jobs[0].start_seconds == 300.0

    for source in sources:
        processor.process_video(source)
    assert sorted(Path(path).name for path in outputs) == ["clip-2.mp4", "clip.mp4", "show-2.mp4", "show.mp4"]


def test_unassigned_paths_still_get_unique_names(tmp_path: Path) -> None:
    processor = VideoProcessor(_config(tmp_path))

    first = processor.build_job(tmp_path / "a" / "clip.mp4")
    second = processor.build_job(tmp_path / "b" / "clip.mp4")

    assert (first.name, second.name) == ("clip", "clip-2")
    assert processor.build_job(tmp_path / "a" / "clip.mp4").name == "clip"
