"""抽帧模块入口。"""

from .sampler import FRAME_PATTERN, build_extract_stream, extract_frames, list_frames

__all__ = [
    "FRAME_PATTERN",
    "build_extract_stream",
    "extract_frames",
    "list_frames",
]
