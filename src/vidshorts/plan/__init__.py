"""片段规划模块入口。"""

from .planner import OUTPUT_LABEL, SegmentPlan, SkippedFrame, build_filter_graph, plan_segments
from .reframe import ReframeSpec, build_reframe_chain

__all__ = [
    "OUTPUT_LABEL",
    "SegmentPlan",
    "SkippedFrame",
    "build_filter_graph",
    "plan_segments",
    "ReframeSpec",
    "build_reframe_chain",
]
