"""单帧内容分类：调用 chat completions 接口，强制三选一函数调用。

任何传输、解析或结构错误都不会抛给调用方，而是发出错误/警告事件并
回退为 keep/1.0，保证分类失败本身不会导致删除或变速。
"""

from __future__ import annotations

import base64
import copy
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
import json
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, Field, ValidationError

from vidshorts.core.config import AnalyzerConfig
from vidshorts.core.datamodels import ActionMap, Frame, FrameAction, FrameAnalysis
from vidshorts.core.errors import AnalyzerConfigError
from vidshorts.core.events import JobEvents
from vidshorts.core.logging_utils import get_logger

from .criteria import TOOL_NAME, build_system_prompt, build_tool_choice, build_tools

ProgressCallback = Callable[[int, int, float], None]


class _ToolArguments(BaseModel):
    action: FrameAction
    confidence: float = Field(ge=0.0, le=1.0)
    reason: Optional[str] = None


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(item) for item in err.get("loc", ()))
        parts.append(f"{location}: {err.get('msg')}")
    return ", ".join(parts)


def validate_analyzer_config(config: AnalyzerConfig | Mapping[str, Any]) -> AnalyzerConfig:
    """重新校验配置，model_construct 绕过的非法值也会在这里被拦下。"""

    payload = config.model_dump() if isinstance(config, AnalyzerConfig) else dict(config)
    try:
        return AnalyzerConfig.model_validate(payload)
    except ValidationError as exc:
        raise AnalyzerConfigError(f"Invalid analyzer config: {_format_validation_error(exc)}") from exc


class FrameClassifier:
    """帧分类器；构造时校验配置，之后不可变。"""

    def __init__(self, config: AnalyzerConfig | Mapping[str, Any], *, events: Optional[JobEvents] = None) -> None:
        self.config = validate_analyzer_config(config)
        self.events = events or JobEvents()
        self.system_prompt = build_system_prompt(self.config)
        self.tools = build_tools(self.config)
        self.logger = get_logger(__name__)

    @property
    def confidence_threshold(self) -> float:
        return self.config.confidence_threshold

    def with_events(self, events: JobEvents) -> "FrameClassifier":
        """返回共享配置、绑定到指定任务事件出口的分类器。"""

        clone = copy.copy(self)
        clone.events = events
        return clone

    def build_request(self, frame_base64: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{frame_base64}"},
                        }
                    ],
                },
            ],
            "tools": self.tools,
            "tool_choice": build_tool_choice(),
            "max_tokens": 150,
        }

    def classify(self, frame_bytes: bytes, frame: int) -> FrameAnalysis:
        """分类单帧，永不抛错。"""

        frame_base64 = base64.b64encode(frame_bytes).decode("ascii")
        payload = self.build_request(frame_base64)
        endpoint = self.config.base_url.rstrip("/") + "/chat/completions"

        try:
            with httpx.Client(timeout=self.config.timeout_s) as client:
                resp = client.post(
                    endpoint,
                    headers={"Authorization": f"Bearer {self.config.api_key}", "Content-Type": "application/json"},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except Exception as exc:
            self.events.error(
                "Error response from classification service. Defaulting to keep frame.",
                error=exc,
                frame=frame,
                frame_bytes=len(frame_bytes),
            )
            return FrameAnalysis.default(frame)

        arguments = _extract_tool_arguments(data)
        if arguments is None:
            self.events.warning(
                "Unexpected response format from classification service. Defaulting to keep frame.",
                frame=frame,
                response=data,
            )
            return FrameAnalysis.default(frame)

        try:
            parsed = _ToolArguments.model_validate(arguments)
        except ValidationError as exc:
            self.events.warning(
                "Malformed classification result. Defaulting to keep frame.",
                frame=frame,
                arguments=arguments,
                detail=_format_validation_error(exc),
            )
            return FrameAnalysis.default(frame)

        return FrameAnalysis(action=parsed.action, confidence=parsed.confidence, frame=frame, reason=parsed.reason)

    def classify_path(self, frame: Frame) -> FrameAnalysis:
        try:
            frame_bytes = Path(frame.path).read_bytes()
        except OSError as exc:
            self.events.error("Failed to read frame. Defaulting to keep frame.", error=exc, frame=frame.ordinal)
            return FrameAnalysis.default(frame.ordinal)
        return self.classify(frame_bytes, frame.ordinal)

    def classify_frames(
        self,
        frames: Sequence[Frame],
        *,
        parallel: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ActionMap:
        """按固定批大小并发分类；整批结束后才放行下一批。"""

        if parallel < 1:
            raise ValueError("parallel must be >= 1")

        actions = ActionMap()
        total = len(frames)
        processed = 0
        if not total:
            return actions

        with ThreadPoolExecutor(max_workers=parallel, thread_name_prefix="classify") as pool:
            for offset in range(0, total, parallel):
                batch = frames[offset : offset + parallel]
                futures: Dict[Future[FrameAnalysis], Frame] = {
                    pool.submit(self.classify_path, frame): frame for frame in batch
                }
                for future in as_completed(futures):
                    frame = futures[future]
                    actions.set(frame.timestamp, future.result())
                    processed += 1
                    if on_progress is not None:
                        on_progress(processed, total, processed / total * 100)
                self.logger.debug("Classified batch %d-%d of %d", offset + 1, offset + len(batch), total)
        return actions


def _extract_tool_arguments(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    tool_calls = message.get("tool_calls")
    if not isinstance(tool_calls, list) or not tool_calls or not isinstance(tool_calls[0], dict):
        return None
    function = tool_calls[0].get("function")
    if not isinstance(function, dict) or function.get("name") != TOOL_NAME:
        return None
    raw_arguments = function.get("arguments")
    if isinstance(raw_arguments, dict):
        return raw_arguments
    try:
        parsed = json.loads(raw_arguments or "")
    except (TypeError, json.JSONDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None
