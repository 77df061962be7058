"""错误类型：区分配置、抽帧、编码与输入错误，便于上层按类别处理。"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class VidShortsError(RuntimeError):
    """所有可预期失败的基类，携带可读信息与可选的结构化细节。"""

    def __init__(self, message: str, *, details: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})


class AnalyzerConfigError(VidShortsError, ValueError):
    """分类器配置非法（阈值越界、缺少密钥），在任何网络调用前抛出。"""


class TimecodeError(VidShortsError, ValueError):
    """时间码格式错误或裁剪窗口非法。"""


class FrameExtractionError(VidShortsError):
    """ffmpeg 抽帧失败，只终止所属任务。"""


class EncodeError(VidShortsError):
    """ffmpeg 合成失败，只终止所属任务。"""


class InputError(VidShortsError):
    """输入目录缺失、不是目录或没有可处理的视频，终止整个运行。"""
