"""导出模块入口。"""

from .encoder import Encoder, has_audio_stream, parse_duration_line, parse_progress_line

__all__ = ["Encoder", "has_audio_stream", "parse_duration_line", "parse_progress_line"]
