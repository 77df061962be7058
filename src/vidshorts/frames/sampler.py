"""视频抽帧：调用 ffmpeg 按固定间隔输出最高质量 JPEG。"""

from __future__ import annotations

from pathlib import Path
import re
import shlex
from typing import List, Optional

import ffmpeg

from vidshorts.core.datamodels import Frame
from vidshorts.core.errors import FrameExtractionError
from vidshorts.core.events import JobEvents
from vidshorts.core.timecode import format_seconds

FRAME_PATTERN = "frame-%d.jpg"
_FRAME_NAME = re.compile(r"^frame-(\d+)\.jpg$")


def build_extract_stream(
    video_path: str | Path,
    output_dir: str | Path,
    interval: float,
    *,
    start: Optional[float] = None,
    duration: Optional[float] = None,
):
    """构建抽帧 graph；裁剪窗口与导出阶段一致，保证帧时间戳同源。"""

    if interval <= 0:
        raise ValueError("interval must be positive")

    input_kwargs = {}
    if start:
        input_kwargs["ss"] = format_seconds(start)
    if duration is not None:
        input_kwargs["t"] = format_seconds(duration)

    pattern = (Path(output_dir) / FRAME_PATTERN).as_posix()
    stream = ffmpeg.input(str(video_path), **input_kwargs)
    stream = ffmpeg.output(
        stream,
        pattern,
        vf=f"fps=1/{format_seconds(interval)}",
        **{
            "qscale:v": 2,  # JPEG 质量 2-31，2 最高
            "qmin": 2,
            "qmax": 2,
            "strict": "unofficial",  # 允许非标准 YUV 范围
        },
    )
    return ffmpeg.overwrite_output(stream)


def extract_frames(
    video_path: str | Path,
    output_dir: str | Path,
    interval: float,
    *,
    start: Optional[float] = None,
    duration: Optional[float] = None,
    events: Optional[JobEvents] = None,
    ffmpeg_cmd: str = "ffmpeg",
) -> List[Frame]:
    """抽帧并返回按序号排序的帧列表；ffmpeg 失败时抛出 FrameExtractionError。"""

    events = events or JobEvents()
    stream = build_extract_stream(video_path, output_dir, interval, start=start, duration=duration)
    args = ffmpeg.compile(stream, cmd=ffmpeg_cmd)
    events.debug("Executing command:", shlex.join(args))

    try:
        ffmpeg.run(stream, cmd=ffmpeg_cmd, capture_stdout=True, capture_stderr=True, quiet=True)
    except ffmpeg.Error as exc:
        stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
        events.debug("FFmpeg stderr:", stderr)
        raise FrameExtractionError(
            f"抽帧失败: {video_path}",
            details={"command": args, "stderr": stderr},
        ) from exc

    return list_frames(output_dir, interval)


def list_frames(frames_dir: str | Path, interval: float) -> List[Frame]:
    """读取目录中的帧文件；fps 滤镜的第 1 帧位于 0 秒，因此时间戳为 (序号-1)*间隔。"""

    directory = Path(frames_dir)
    frames: List[Frame] = []
    if not directory.exists():
        return frames
    for path in directory.iterdir():
        match = _FRAME_NAME.match(path.name)
        if not match or not path.is_file():
            continue
        ordinal = int(match.group(1))
        if ordinal < 1:
            continue
        frames.append(Frame(ordinal=ordinal, timestamp=(ordinal - 1) * interval, path=path))
    frames.sort(key=lambda frame: frame.ordinal)
    return frames
