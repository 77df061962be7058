"""时间码工具：解析 HH:MM:SS / MM:SS，并格式化秒数供 ffmpeg 参数使用。"""

from __future__ import annotations

import re

from .errors import TimecodeError

_TIMECODE_PATTERN = re.compile(r"^\d+(?::\d{1,2}){0,2}(?:\.\d+)?$")


def parse_timecode(value: str) -> float:
    """把 `HH:MM:SS`、`MM:SS` 或纯秒数转换为秒。"""

    text = value.strip()
    if not _TIMECODE_PATTERN.match(text):
        raise TimecodeError(f"无法解析时间码: {value!r}")
    seconds = 0.0
    for power, part in enumerate(reversed(text.split(":"))):
        seconds += float(part) * 60**power
    return seconds


def format_seconds(value: float) -> str:
    """输出不带多余尾零的秒数字符串，如 30、12.5。"""

    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return text or "0"
