from __future__ import annotations

# 本模块负责把 SegmentPlan 交给 ffmpeg 执行：
# 1) 以 -filter_complex 注入规划出的滤镜图，并 -map 其输出标签与源音轨；
# 2) 通过 -progress pipe:1 读取遥测，换算为 compiling_video 进度事件；
# 3) 失败时附带 stderr 抛出 EncodeError，只终止所属任务。

from collections import deque
from pathlib import Path
import re
import shlex
import threading
import time
from typing import IO, Deque, Optional

import ffmpeg

from vidshorts.core.config import ExportConfig
from vidshorts.core.errors import EncodeError
from vidshorts.core.events import JobEvents, Stage
from vidshorts.core.logging_utils import get_logger
from vidshorts.core.timecode import format_seconds
from vidshorts.plan.planner import SegmentPlan

_DURATION_LINE = re.compile(r"Duration:\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_STDERR_TAIL = 50


def parse_duration_line(line: str) -> Optional[float]:
    """解析 ffmpeg 输入元数据中的 `Duration: HH:MM:SS.xx`。"""

    match = _DURATION_LINE.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_progress_line(line: str) -> Optional[float]:
    """解析 `out_time_ms=`/`out_time_us=` 遥测行，返回已编码秒数。

    ffmpeg 的 out_time_ms 实际单位也是微秒。
    """

    key, sep, value = line.partition("=")
    if not sep or key.strip() not in {"out_time_ms", "out_time_us"}:
        return None
    try:
        return int(value.strip()) / 1_000_000
    except ValueError:
        return None


def has_audio_stream(source: str | Path, *, cmd: str = "ffprobe") -> bool:
    """用 ffprobe 检查源文件是否带音轨；探测失败时抛出 ffmpeg.Error。"""

    info = ffmpeg.probe(str(source), cmd=cmd, select_streams="a")
    return bool(info.get("streams"))


class Encoder:
    """编码器调用方：封装一次 ffmpeg 合成。"""

    def __init__(self, config: Optional[ExportConfig] = None, events: Optional[JobEvents] = None) -> None:
        self.config = config or ExportConfig()
        self.events = events or JobEvents()
        self.logger = get_logger(__name__)

    def with_events(self, events: JobEvents) -> "Encoder":
        return Encoder(self.config, events)

    def build_stream(
        self,
        source: Path,
        output: Path,
        plan: SegmentPlan,
        *,
        start: Optional[float] = None,
        duration: Optional[float] = None,
    ):
        input_kwargs = {}
        if start:
            input_kwargs["ss"] = format_seconds(start)
        if duration is not None:
            input_kwargs["t"] = format_seconds(duration)

        stream = ffmpeg.input(str(source), **input_kwargs)
        # 整段回退的滤镜图只处理视频，源音轨以可选映射 0:a? 带上，无音轨时忽略
        mapped = stream["a?"] if plan.fallback else stream
        stream = ffmpeg.output(
            mapped,
            str(output),
            filter_complex=plan.filter_graph,
            map=f"[{plan.output_label}]",
            vcodec=self.config.video_codec,
            preset=self.config.preset,
            crf=self.config.crf,
            pix_fmt="yuv420p",
            movflags="+faststart",
        )
        stream = stream.global_args("-progress", "pipe:1", "-nostats")
        return ffmpeg.overwrite_output(stream)

    def encode(
        self,
        source: str | Path,
        output: str | Path,
        plan: SegmentPlan,
        *,
        start: Optional[float] = None,
        duration: Optional[float] = None,
    ) -> Path:
        """执行合成并返回输出路径；进度通过 compiling_video 事件上报。"""

        source = Path(source)
        output = Path(output)
        output.parent.mkdir(parents=True, exist_ok=True)

        stream = self.build_stream(source, output, plan, start=start, duration=duration)
        args = ffmpeg.compile(stream, cmd=self.config.ffmpeg_cmd)
        self.events.debug("Executing command:", shlex.join(args))

        tracker = _ProgressTracker(self.events, plan, window=duration, start=start or 0.0)
        stderr_tail: Deque[str] = deque(maxlen=_STDERR_TAIL)

        process = ffmpeg.run_async(stream, cmd=self.config.ffmpeg_cmd, pipe_stdout=True, pipe_stderr=True)

        def drain_stderr(pipe: IO[bytes]) -> None:
            for raw in iter(pipe.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                stderr_tail.append(line)
                source_duration = parse_duration_line(line)
                if source_duration is not None:
                    tracker.observe_source_duration(source_duration)

        drainer = threading.Thread(target=drain_stderr, args=(process.stderr,), daemon=True)
        drainer.start()
        try:
            for raw in iter(process.stdout.readline, b""):
                seconds = parse_progress_line(raw.decode("utf-8", errors="replace"))
                if seconds is not None:
                    tracker.update(seconds)
        except BaseException:
            # 不再读取 stdout 后 ffmpeg 可能阻塞在写管道上，先终止再等待
            process.kill()
            raise
        finally:
            returncode = process.wait()
            drainer.join()

        if returncode != 0:
            stderr = "\n".join(stderr_tail)
            self.events.debug("FFmpeg stderr:", stderr)
            raise EncodeError(
                f"ffmpeg 合成失败 (exit={returncode}): {output}",
                details={"command": args, "returncode": returncode, "stderr": stderr},
            )

        tracker.finish()
        self.logger.debug("Encoded %s -> %s", source, output)
        return output


class _ProgressTracker:
    """把已编码秒数换算为百分比；每前进 1% 发一次事件。

    总时长未知（没有裁剪窗口且 Duration 元数据尚未到达）时无法换算百分比：
    此时 percentage 为 None，消息里给出已编码秒数与已用时间；元数据到达后自动切换为百分比。
    """

    def __init__(self, events: JobEvents, plan: SegmentPlan, *, window: Optional[float], start: float) -> None:
        self.events = events
        self.plan = plan
        self.start = start
        self.total: Optional[float] = plan.output_duration(window) if window is not None else None
        self.current = 0.0
        self.last_percentage: Optional[float] = None
        self.started = time.monotonic()
        self._lock = threading.Lock()

    def observe_source_duration(self, source_duration: float) -> None:
        with self._lock:
            if self.total is not None:
                return
            self.total = self.plan.output_duration(max(0.0, source_duration - self.start))

    def update(self, seconds: float) -> None:
        with self._lock:
            self.current = max(0.0, seconds)
            total = self.total
        if not total:
            elapsed = time.monotonic() - self.started
            self.events.progress(
                Stage.COMPILING_VIDEO,
                f"Compiling video: {self.current:.1f}s encoded, {elapsed:.0f}s elapsed",
                current=self.current,
                total=None,
                percentage=None,
            )
            return
        percentage = min(100.0, max(0.0, self.current / total * 100))
        if self.last_percentage is not None and percentage - self.last_percentage < 1.0:
            return
        self._emit(percentage, total)

    def finish(self) -> None:
        total = self.total
        if self.last_percentage is not None and self.last_percentage >= 100.0:
            return
        if total:
            self.current = total
        self._emit(100.0, total)

    def _emit(self, percentage: float, total: Optional[float]) -> None:
        self.last_percentage = percentage
        self.events.progress(
            Stage.COMPILING_VIDEO,
            f"Compiling video: {percentage:.0f}% done",
            current=self.current,
            total=total,
            percentage=percentage,
        )
