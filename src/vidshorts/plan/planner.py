from __future__ import annotations

# 本模块负责：
# 1) 把按时间戳排序的帧分类结果转换为互不重叠、按时间升序的片段；
# 2) 为每个片段附加 trim/变速/竖屏重构滤镜，并生成 concat 滤镜图；
# 3) 没有任何片段可用时回退为整段重构，保证输出永不为空。

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from vidshorts.core.datamodels import ActionMap, FrameAction, Segment, SegmentTransform
from vidshorts.core.timecode import format_seconds

from .reframe import ReframeSpec, build_reframe_chain

OUTPUT_LABEL = "outv"
SPEED_UP_FILTER = "setpts=0.5*PTS"
AUDIO_SPEED_UP_FILTER = "atempo=2.0"


@dataclass(slots=True, frozen=True)
class SkippedFrame:
    """因置信度低于阈值而被排除的帧。"""

    timestamp: float
    frame: int
    action: FrameAction
    confidence: float


@dataclass(slots=True)
class SegmentPlan:
    """规划结果。

    - segments: 按时间升序、互不重叠的输出片段。
    - filter_graph: 交给 ffmpeg `-filter_complex` 的滤镜图文本。
    - output_label: 滤镜图最终输出标签，供 `-map` 使用。
    - skipped: 低置信度被排除的帧，供上层发出通知。
    - fallback: 是否回退为整段重构。
    - audio: 滤镜图是否同时裁剪拼接音轨（concat 的音频输出不加标签）。
    """

    segments: List[Segment]
    filter_graph: str
    output_label: str = OUTPUT_LABEL
    skipped: List[SkippedFrame] = field(default_factory=list)
    fallback: bool = False
    audio: bool = False

    def output_duration(self, source_duration: Optional[float]) -> Optional[float]:
        """按片段估算输出时长；存在开放片段而源时长未知时返回 None。"""

        total = 0.0
        for segment in self.segments:
            end = segment.end
            if source_duration is not None:
                end = source_duration if end is None else min(end, source_duration)
            if end is None:
                return None
            length = max(0.0, end - segment.start)
            if segment.transform is SegmentTransform.SPEED_UP:
                length /= 2
            total += length
        return total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [segment.to_dict() for segment in self.segments],
            "filter_graph": self.filter_graph,
            "output_label": self.output_label,
            "skipped": [
                {
                    "timestamp": item.timestamp,
                    "frame": item.frame,
                    "action": item.action.value,
                    "confidence": item.confidence,
                }
                for item in self.skipped
            ],
            "fallback": self.fallback,
            "audio": self.audio,
        }


def plan_segments(
    actions: ActionMap,
    *,
    threshold: float,
    interval: float,
    reframe: Optional[ReframeSpec] = None,
    audio: bool = False,
) -> SegmentPlan:
    """主流程：遍历相邻时间戳对 (t[i], t[i+1])，最后一项延续到片尾。

    - remove：不输出片段；
    - 置信度低于阈值（任何动作）：不输出片段，记录到 skipped；
    - speed_up：2 倍速；keep：原速；
    - 一个片段都没有时回退为整段原速重构。

    audio 表示源文件带音轨：分段图会为每段生成对应的 atrim 链。
    整段回退不引用音轨，由编码器以可选映射带上源音频。
    """

    if interval <= 0:
        raise ValueError("interval must be positive")
    if not 0.0 <= threshold <= 1.0:
        raise ValueError("threshold must be in [0, 1]")

    timestamps = actions.timestamps()
    segments: List[Segment] = []
    skipped: List[SkippedFrame] = []

    for idx, timestamp in enumerate(timestamps):
        analysis = actions.get(timestamp)
        if analysis is None or analysis.action is FrameAction.REMOVE:
            continue
        if analysis.confidence < threshold:
            skipped.append(
                SkippedFrame(
                    timestamp=timestamp,
                    frame=analysis.frame or int(round(timestamp / interval)) + 1,
                    action=analysis.action,
                    confidence=analysis.confidence,
                )
            )
            continue
        end = timestamps[idx + 1] if idx + 1 < len(timestamps) else None
        transform = SegmentTransform.SPEED_UP if analysis.action is FrameAction.SPEED_UP else SegmentTransform.PASSTHROUGH
        segments.append(Segment(start=timestamp, end=end, transform=transform))

    chain = build_reframe_chain(reframe)
    if not segments:
        whole = Segment(start=0.0, end=None, transform=SegmentTransform.PASSTHROUGH)
        return SegmentPlan(
            segments=[whole],
            filter_graph=f"[0:v]{chain}[{OUTPUT_LABEL}]",
            skipped=skipped,
            fallback=True,
        )

    return SegmentPlan(
        segments=segments,
        filter_graph=build_filter_graph(segments, chain, audio=audio),
        skipped=skipped,
        audio=audio,
    )


def _trim_bounds(segment: Segment) -> str:
    bounds = f"start={format_seconds(segment.start)}"
    if segment.end is not None:
        bounds += f":end={format_seconds(segment.end)}"
    return bounds


def build_filter_graph(segments: List[Segment], chain: str, *, audio: bool = False) -> str:
    """每个片段一条 trim 链（带音轨时另有一条 atrim 链），最后按原始时间顺序 concat。

    concat 的视频输出标记为 [outv]；音频输出不加标签，ffmpeg 会把它直接写入输出文件。
    """

    parts: List[str] = []
    labels: List[str] = []
    for idx, segment in enumerate(segments):
        speed_up = segment.transform is SegmentTransform.SPEED_UP
        filters = [f"trim={_trim_bounds(segment)}", "setpts=PTS-STARTPTS"]
        if speed_up:
            filters.append(SPEED_UP_FILTER)
        filters.append(chain)
        parts.append(f"[0:v]{','.join(filters)}[v{idx}]")
        labels.append(f"[v{idx}]")
        if audio:
            audio_filters = [f"atrim={_trim_bounds(segment)}", "asetpts=PTS-STARTPTS"]
            if speed_up:
                audio_filters.append(AUDIO_SPEED_UP_FILTER)
            parts.append(f"[0:a]{','.join(audio_filters)}[a{idx}]")
            labels.append(f"[a{idx}]")
    parts.append(f"{''.join(labels)}concat=n={len(segments)}:v=1:a={int(audio)}[{OUTPUT_LABEL}]")
    return ";".join(parts)
