"""核心数据结构定义，覆盖帧、帧分析结果、动作表与时间线片段。"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class FrameAction(str, Enum):
    """单帧分类结果：保留、删除或加速。"""

    KEEP = "keep"
    REMOVE = "remove"
    SPEED_UP = "speed_up"


class SegmentTransform(str, Enum):
    """片段变换：原速、2 倍速或丢弃（丢弃永远不会生成片段）。"""

    PASSTHROUGH = "passthrough"
    SPEED_UP = "speed_up"
    DROP = "drop"


@dataclass(slots=True, frozen=True)
class Frame:
    """抽帧结果，序号从 1 开始，对应临时目录中的一张图片。"""

    ordinal: int
    timestamp: float
    path: Path


@dataclass(slots=True, frozen=True)
class FrameAnalysis:
    """分类器对单帧的判断，创建后不可变。"""

    action: FrameAction
    confidence: float
    frame: int
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence 需位于 [0, 1]，实际为 {self.confidence}")
        if not isinstance(self.action, FrameAction):
            object.__setattr__(self, "action", FrameAction(self.action))

    @classmethod
    def default(cls, frame: int) -> "FrameAnalysis":
        """分类失败时的安全默认值：保留，置信度 1.0。"""

        return cls(action=FrameAction.KEEP, confidence=1.0, frame=frame)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["action"] = self.action.value
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FrameAnalysis":
        return cls(
            action=FrameAction(data["action"]),
            confidence=float(data["confidence"]),
            frame=int(data.get("frame", 0)),
            reason=data.get("reason"),
        )


class ActionMap:
    """时间戳 -> FrameAnalysis 的有序映射。

    分类并发完成时写入顺序不确定，因此迭代时总是按时间戳升序返回；
    负数或重复的时间戳会被拒绝，保证键严格递增。
    """

    def __init__(self, entries: Optional[Mapping[float, FrameAnalysis]] = None) -> None:
        self._entries: Dict[float, FrameAnalysis] = {}
        for timestamp, analysis in (entries or {}).items():
            self.set(timestamp, analysis)

    def set(self, timestamp: float, analysis: FrameAnalysis) -> None:
        key = float(timestamp)
        if key < 0:
            raise ValueError(f"时间戳不能为负数: {timestamp}")
        if key in self._entries:
            raise ValueError(f"重复的时间戳: {timestamp}")
        self._entries[key] = analysis

    def get(self, timestamp: float) -> Optional[FrameAnalysis]:
        return self._entries.get(float(timestamp))

    def timestamps(self) -> List[float]:
        return sorted(self._entries)

    def items(self) -> List[Tuple[float, FrameAnalysis]]:
        return [(key, self._entries[key]) for key in self.timestamps()]

    def __iter__(self) -> Iterator[float]:
        return iter(self.timestamps())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, timestamp: object) -> bool:
        try:
            return float(timestamp) in self._entries  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False

    def to_dict(self) -> Dict[str, Any]:
        """序列化为以秒为键的 JSON 对象，便于离线复现规划。"""

        return {str(key): analysis.to_dict() for key, analysis in self.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionMap":
        actions = cls()
        for key, value in data.items():
            actions.set(float(key), FrameAnalysis.from_dict(value))
        return actions


@dataclass(slots=True, frozen=True)
class Segment:
    """输出时间线上的一段：[start, end)，end 为 None 表示延续到片尾。

    所有片段都附带固定的竖屏重构变换，与单帧动作无关。
    """

    start: float
    end: Optional[float]
    transform: SegmentTransform
    reframe: bool = True

    @property
    def open_ended(self) -> bool:
        return self.end is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "transform": self.transform.value,
            "reframe": self.reframe,
        }
