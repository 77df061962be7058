from __future__ import annotations

# 本模块负责单个视频的完整流程：
# 1) 推导任务（名称、裁剪窗口、临时/输出路径）并创建目录；
# 2) 抽帧 -> 并发分类 -> 规划片段 -> ffmpeg 合成；
# 3) 临时目录由上下文管理器持有，成功或失败都会清理。

from contextlib import contextmanager
import json
from pathlib import Path
import shutil
import threading
import time
from typing import Callable, Dict, Iterable, Iterator, List, Optional

import ffmpeg

from vidshorts.analyze.classifier import FrameClassifier
from vidshorts.core.config import PipelineConfig
from vidshorts.core.datamodels import ActionMap, Frame
from vidshorts.core.events import EventChannels, JobEvents, Stage
from vidshorts.core.logging_utils import get_logger
from vidshorts.core.paths import unique_names
from vidshorts.export.encoder import Encoder, has_audio_stream
from vidshorts.frames.sampler import extract_frames
from vidshorts.plan.planner import SegmentPlan, plan_segments
from vidshorts.plan.reframe import ReframeSpec

from .job import VideoJob, derive_job_name

Sampler = Callable[..., List[Frame]]
AudioProbe = Callable[..., bool]
DEFAULT_THRESHOLD = 0.7


@contextmanager
def job_workspace(temp_dir: Path, events: JobEvents) -> Iterator[Path]:
    """创建任务临时目录，退出时无论成败都删除。"""

    temp_dir.mkdir(parents=True, exist_ok=True)
    try:
        yield temp_dir
    finally:
        events.stage(Stage.CLEANUP, "Cleaning up temporary files...", temp_dir=str(temp_dir))
        try:
            shutil.rmtree(temp_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            events.warning(f"Failed to remove temporary directory: {temp_dir}", error=str(exc))


class VideoProcessor:
    """视频处理器：持有共享配置与分类器，每次调用处理一个视频。

    classifier 为空时跳过抽帧与分类，只做竖屏重构。
    同一处理器内每个源文件占用唯一的任务名，重名时追加 -2、-3。
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        classifier: Optional[FrameClassifier] = None,
        sampler: Sampler = extract_frames,
        encoder: Optional[Encoder] = None,
        audio_probe: AudioProbe = has_audio_stream,
        channels: Optional[EventChannels] = None,
    ) -> None:
        self.config = config
        self.classifier = classifier
        self.sampler = sampler
        self.encoder = encoder or Encoder(config.export)
        self.audio_probe = audio_probe
        self.channels = channels or EventChannels()
        self.reframe = ReframeSpec(max_height=config.export.max_height, content_ratio=config.export.content_ratio)
        self.logger = get_logger(__name__)
        self._names: Dict[Path, str] = {}
        self._names_lock = threading.Lock()

    @property
    def threshold(self) -> float:
        return self.classifier.confidence_threshold if self.classifier else DEFAULT_THRESHOLD

    def assign_names(self, video_paths: Iterable[str | Path]) -> Dict[Path, str]:
        """按输入顺序预先分配任务名，使并发调度下的命名与顺序无关。"""

        return {Path(path): self._claim_name(Path(path)) for path in video_paths}

    def _claim_name(self, source: Path) -> str:
        with self._names_lock:
            name = self._names.get(source)
            if name is None:
                name = unique_names([derive_job_name(source)], taken=self._names.values())[0]
                self._names[source] = name
            return name

    def build_job(self, video_path: str | Path) -> VideoJob:
        source = Path(video_path)
        return VideoJob.from_path(source, self.config.processor, name=self._claim_name(source))

    def process_video(self, video_path: str | Path) -> Path:
        """处理单个视频并返回输出路径；抽帧/合成失败向上抛出。"""

        started = time.perf_counter()
        job = self.build_job(video_path)
        events = self.channels.bind(job.name)

        events.stage(Stage.INIT, f"Processing video: {job.source_path}")
        events.debug("Video job:", job.to_dict())

        events.stage(
            Stage.CREATING_DIRECTORIES,
            "Creating directories...",
            temp_dir=str(job.temp_dir),
            output_dir=str(job.output_path.parent),
        )
        job.output_path.parent.mkdir(parents=True, exist_ok=True)

        with job_workspace(job.temp_dir, events):
            actions = self._analyze(job, events)

            events.stage(Stage.APPLYING_MODIFICATIONS, "Applying video modifications...")
            plan = self._plan(actions, events, audio=bool(len(actions)) and self._has_audio(job, events))
            self._save_actions(job, actions, events)

            events.stage(Stage.COMPILING_VIDEO, "Compiling video...")
            self.encoder.with_events(events).encode(
                job.source_path,
                job.output_path,
                plan,
                start=job.start_seconds,
                duration=job.duration_seconds,
            )

        elapsed = time.perf_counter() - started
        events.complete(job.output_path, elapsed)
        return job.output_path

    def _analyze(self, job: VideoJob, events: JobEvents) -> ActionMap:
        if self.classifier is None:
            return ActionMap()

        processor_cfg = self.config.processor
        events.stage(Stage.EXTRACTING_FRAMES, "Extracting frames...")
        frames = self.sampler(
            job.source_path,
            job.temp_dir,
            processor_cfg.frame_interval,
            start=job.start_seconds,
            duration=job.duration_seconds,
            events=events,
            ffmpeg_cmd=self.config.export.ffmpeg_cmd,
        )

        events.stage(Stage.ANALYZING_FRAMES, "Analyzing frames...", frames=len(frames))

        def on_progress(current: int, total: int, percentage: float) -> None:
            events.progress(
                Stage.ANALYZING_FRAMES,
                f"Analyzing frames: {percentage:.1f}% ({current}/{total})",
                current=current,
                total=total,
                percentage=percentage,
            )

        classifier = self.classifier.with_events(events)
        return classifier.classify_frames(frames, parallel=processor_cfg.parallel_frames, on_progress=on_progress)

    def _has_audio(self, job: VideoJob, events: JobEvents) -> bool:
        """探测失败时不中断任务，按无音轨输出并发出警告。"""

        try:
            return self.audio_probe(job.source_path, cmd=self.config.export.ffprobe_cmd)
        except ffmpeg.Error as exc:
            stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
            events.warning("Failed to probe audio streams, output will be silent", error=stderr.strip())
        except OSError as exc:
            events.warning("Failed to run ffprobe, output will be silent", error=str(exc))
        return False

    def _plan(self, actions: ActionMap, events: JobEvents, *, audio: bool = False) -> SegmentPlan:
        plan = plan_segments(
            actions,
            threshold=self.threshold,
            interval=self.config.processor.frame_interval,
            reframe=self.reframe,
            audio=audio,
        )
        for skipped in plan.skipped:
            events.frame_skipped(
                timestamp=skipped.timestamp,
                frame=skipped.frame,
                action=skipped.action,
                confidence=skipped.confidence,
            )
        if plan.fallback:
            events.stage(
                Stage.APPLYING_MODIFICATIONS,
                "No segments selected, reframing the whole clip without trimming",
                fallback=True,
            )
        events.debug("Segment plan:", plan.to_dict())
        return plan

    def _save_actions(self, job: VideoJob, actions: ActionMap, events: JobEvents) -> None:
        if not self.config.processor.save_actions or not len(actions):
            return
        target = job.output_path.with_suffix(".actions.json")
        target.write_text(json.dumps(actions.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        events.debug("Saved action map:", str(target))
