"""单个视频任务：从文件名推导名称、裁剪窗口与输出路径。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re
from typing import Any, Dict, Optional

from vidshorts.core.config import ProcessorConfig
from vidshorts.core.errors import TimecodeError
from vidshorts.core.paths import default_output_dir
from vidshorts.core.timecode import parse_timecode

# 文件名形如 "00:00:30-00:01:30.mp4"（扩展名不限、不区分大小写）时，窗口优先于全局 start/end
WINDOW_PATTERN = re.compile(r"((\d{2}:\d{2}:\d{2})-(\d{2}:\d{2}:\d{2}))\.[^.]+$", re.IGNORECASE)


def derive_job_name(path: str | Path) -> str:
    """去掉文件名中的裁剪窗口；只剩窗口时退回父目录名。"""

    source = Path(path)
    stem = source.stem
    match = WINDOW_PATTERN.search(source.name)
    if match:
        stem = stem.replace(match.group(1), "", 1)
    return stem.strip("-") or source.parent.name


@dataclass(slots=True)
class VideoJob:
    """每个输入文件对应一个任务，创建后由处理器独占使用。"""

    source_path: Path
    name: str
    temp_dir: Path
    output_path: Path
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        config: ProcessorConfig,
        output_dir: Optional[Path] = None,
        *,
        name: Optional[str] = None,
    ) -> "VideoJob":
        """name 由调用方分配时直接使用，保证同批任务的临时目录与输出互不冲突。"""

        source = Path(path)
        match = WINDOW_PATTERN.search(source.name)
        start_time = match.group(2) if match else config.start_time
        end_time = match.group(3) if match else config.end_time
        name = name or derive_job_name(source)

        target_dir = output_dir or config.output_dir or default_output_dir(source.parent)
        job = cls(
            source_path=source,
            name=name,
            temp_dir=config.temp_dir / name,
            output_path=Path(target_dir) / f"{name}.mp4",
            start_time=start_time,
            end_time=end_time,
        )
        job.validate_window()
        return job

    @property
    def start_seconds(self) -> Optional[float]:
        return parse_timecode(self.start_time) if self.start_time else None

    @property
    def end_seconds(self) -> Optional[float]:
        return parse_timecode(self.end_time) if self.end_time else None

    @property
    def duration_seconds(self) -> Optional[float]:
        """裁剪窗口长度；未设置结束时间时为 None。"""

        end = self.end_seconds
        if end is None:
            return None
        return end - (self.start_seconds or 0.0)

    def validate_window(self) -> None:
        duration = self.duration_seconds
        if duration is not None and duration <= 0:
            raise TimecodeError(
                f"结束时间需晚于开始时间: {self.start_time or '0'} -> {self.end_time}",
                details={"video": str(self.source_path)},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_path": str(self.source_path),
            "name": self.name,
            "temp_dir": str(self.temp_dir),
            "output_path": str(self.output_path),
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
