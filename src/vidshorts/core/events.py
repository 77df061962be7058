"""三路事件通道：处理进度、错误/警告、调试信息。

每个通道只接受固定的事件类型，由外部展示层（CLI 日志等）订阅；
核心流程本身不依赖任何全局状态。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
import threading
from typing import Any, Callable, Dict, Generic, List, Literal, Optional, TypeVar, Union

from .datamodels import FrameAction


class Stage(str, Enum):
    """单个视频的处理阶段，按出现顺序排列。"""

    INIT = "init"
    CREATING_DIRECTORIES = "creating_directories"
    EXTRACTING_FRAMES = "extracting_frames"
    ANALYZING_FRAMES = "analyzing_frames"
    APPLYING_MODIFICATIONS = "applying_modifications"
    COMPILING_VIDEO = "compiling_video"
    CLEANUP = "cleanup"
    COMPLETE = "complete"


@dataclass(slots=True, frozen=True)
class Progress:
    current: float
    total: Optional[float]
    percentage: Optional[float]


@dataclass(slots=True, frozen=True)
class StageEvent:
    stage: Stage
    message: str
    video: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    stage: Stage
    message: str
    progress: Progress
    video: Optional[str] = None


@dataclass(slots=True, frozen=True)
class FrameSkippedEvent:
    """低置信度帧被排除时的通知。"""

    message: str
    timestamp: float
    frame: int
    action: FrameAction
    confidence: float
    video: Optional[str] = None
    stage: Stage = Stage.APPLYING_MODIFICATIONS


@dataclass(slots=True, frozen=True)
class CompleteEvent:
    message: str
    output_path: Path
    elapsed_seconds: float
    video: Optional[str] = None
    stage: Stage = Stage.COMPLETE


ProcessingEvent = Union[StageEvent, ProgressEvent, FrameSkippedEvent, CompleteEvent]


@dataclass(slots=True, frozen=True)
class ErrorEvent:
    level: Literal["error", "warning"]
    message: str
    video: Optional[str] = None
    error: Optional[BaseException] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class DebugEvent:
    message: str
    data: Any = None
    video: Optional[str] = None


EventT = TypeVar("EventT")


class Channel(Generic[EventT]):
    """线程安全的单通道发布/订阅。"""

    def __init__(self) -> None:
        self._handlers: List[Callable[[EventT], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Callable[[EventT], None]) -> Callable[[], None]:
        """注册 handler，返回取消订阅函数。"""

        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: EventT) -> None:
        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(event)


class EventChannels:
    """聚合三路通道；`bind` 为单个任务生成带视频名的视图。"""

    def __init__(self) -> None:
        self.processing: Channel[ProcessingEvent] = Channel()
        self.error: Channel[ErrorEvent] = Channel()
        self.debug: Channel[DebugEvent] = Channel()

    def bind(self, video: Optional[str] = None) -> "JobEvents":
        return JobEvents(self, video)


class JobEvents:
    """单任务事件出口，自动填充 video 字段，每个任务构造一次。"""

    def __init__(self, channels: Optional[EventChannels] = None, video: Optional[str] = None) -> None:
        self.channels = channels or EventChannels()
        self.video = video

    def stage(self, stage: Stage, message: str, **data: Any) -> None:
        self.channels.processing.publish(StageEvent(stage=stage, message=message, video=self.video, data=data))

    def progress(self, stage: Stage, message: str, *, current: float, total: Optional[float], percentage: Optional[float]) -> None:
        event = ProgressEvent(
            stage=stage,
            message=message,
            progress=Progress(current=current, total=total, percentage=percentage),
            video=self.video,
        )
        self.channels.processing.publish(event)

    def frame_skipped(self, *, timestamp: float, frame: int, action: FrameAction, confidence: float) -> None:
        message = f"Skipping frame {frame} at {timestamp:g}s ({action.value}) due to low confidence: {confidence:.2f}"
        self.channels.processing.publish(
            FrameSkippedEvent(
                message=message,
                timestamp=timestamp,
                frame=frame,
                action=action,
                confidence=confidence,
                video=self.video,
            )
        )

    def complete(self, output_path: Path, elapsed_seconds: float) -> None:
        message = f"Processing complete! Output saved to: {output_path} ({elapsed_seconds:.1f}s)"
        self.channels.processing.publish(
            CompleteEvent(message=message, output_path=output_path, elapsed_seconds=elapsed_seconds, video=self.video)
        )

    def error(self, message: str, *, error: Optional[BaseException] = None, **data: Any) -> None:
        self.channels.error.publish(ErrorEvent(level="error", message=message, video=self.video, error=error, data=data))

    def warning(self, message: str, **data: Any) -> None:
        self.channels.error.publish(ErrorEvent(level="warning", message=message, video=self.video, data=data))

    def debug(self, message: str, data: Any = None) -> None:
        self.channels.debug.publish(DebugEvent(message=message, data=data, video=self.video))
