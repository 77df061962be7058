"""分类判定标准：内置默认文案、系统提示词与强制单选的函数调用定义。"""

from __future__ import annotations

from typing import Any, Dict, List

from vidshorts.core.config import AnalyzerConfig

TOOL_NAME = "analyze_frame"

DEFAULT_CRITERIA: Dict[str, str] = {
    "speed_up": "Content is repetitive, slow, or less interesting but still relevant",
    "remove": "Content is unwanted, irrelevant, or of poor quality",
    "keep": "Content is interesting, important, or high quality",
}


def resolve_criteria(config: AnalyzerConfig) -> Dict[str, str]:
    """未设置的动作类别回退到内置默认标准。"""

    return {
        "speed_up": config.speed_up or DEFAULT_CRITERIA["speed_up"],
        "remove": config.remove or DEFAULT_CRITERIA["remove"],
        "keep": config.keep or DEFAULT_CRITERIA["keep"],
    }


def build_system_prompt(config: AnalyzerConfig) -> str:
    criteria = resolve_criteria(config)
    return (
        "You are a video editing assistant that analyzes video frames. "
        "Your task is to determine whether a video frame should be:\n\n"
        f"1. \"speed_up\" - When {criteria['speed_up']}\n"
        f"2. \"remove\" - When {criteria['remove']}\n"
        f"3. \"keep\" - When {criteria['keep']}\n\n"
        "Analyze the video frame carefully and make your decision based on these criteria.\n"
        "Consider factors like visual quality, content, movement, and context."
    )


def build_tools(config: AnalyzerConfig) -> List[Dict[str, Any]]:
    """单一函数调用，action 限定为三选一，三个字段均必填。"""

    criteria = resolve_criteria(config)
    action_description = (
        "The action to take on this frame:\n"
        f"- speed_up: {criteria['speed_up']}\n"
        f"- remove: {criteria['remove']}\n"
        f"- keep: {criteria['keep']}"
    )
    return [
        {
            "type": "function",
            "function": {
                "name": TOOL_NAME,
                "description": "Analyze a video frame and decide how to process it",
                "parameters": {
                    "type": "object",
                    "properties": {
                        "action": {
                            "type": "string",
                            "enum": ["speed_up", "remove", "keep"],
                            "description": action_description,
                        },
                        "reason": {
                            "type": "string",
                            "description": "Brief explanation for the chosen action",
                        },
                        "confidence": {
                            "type": "number",
                            "minimum": 0,
                            "maximum": 1,
                            "description": "Confidence level in the decision (0-1)",
                        },
                    },
                    "required": ["action", "reason", "confidence"],
                },
            },
        }
    ]


def build_tool_choice() -> Dict[str, Any]:
    return {"type": "function", "function": {"name": TOOL_NAME}}
