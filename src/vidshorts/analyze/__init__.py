"""帧分类模块入口。"""

from .classifier import FrameClassifier, validate_analyzer_config
from .criteria import DEFAULT_CRITERIA, build_system_prompt, build_tools

__all__ = [
    "FrameClassifier",
    "validate_analyzer_config",
    "DEFAULT_CRITERIA",
    "build_system_prompt",
    "build_tools",
]
