"""核心模块入口，聚合数据模型、事件通道与配置加载工具供各步骤复用。"""

from .datamodels import ActionMap, Frame, FrameAction, FrameAnalysis, Segment, SegmentTransform
from .config import AnalyzerConfig, ExportConfig, PipelineConfig, ProcessorConfig, SchedulerConfig, load_config
from .errors import (
    AnalyzerConfigError,
    EncodeError,
    FrameExtractionError,
    InputError,
    TimecodeError,
    VidShortsError,
)
from .events import EventChannels, JobEvents, Stage
from .logging_utils import attach_logging_sink, get_logger, setup_logging
from .paths import resolve_temp_root

__all__ = [
    "ActionMap",
    "Frame",
    "FrameAction",
    "FrameAnalysis",
    "Segment",
    "SegmentTransform",
    "AnalyzerConfig",
    "ExportConfig",
    "PipelineConfig",
    "ProcessorConfig",
    "SchedulerConfig",
    "load_config",
    "AnalyzerConfigError",
    "EncodeError",
    "FrameExtractionError",
    "InputError",
    "TimecodeError",
    "VidShortsError",
    "EventChannels",
    "JobEvents",
    "Stage",
    "attach_logging_sink",
    "get_logger",
    "setup_logging",
    "resolve_temp_root",
]
