"""轻量日志工具，以及把三路事件通道转接到 logging 的展示层。"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional

from .events import DebugEvent, ErrorEvent, EventChannels, ProcessingEvent, ProgressEvent


def setup_logging(level: str = "INFO") -> None:
    """设置全局日志级别，默认 INFO，可在 CLI 入口覆盖。"""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """获取模块专属 logger。"""

    return logging.getLogger(name or "vidshorts")


def _prefix(video: Optional[str]) -> str:
    return f"[{video}] " if video else ""


def _render(data: Any) -> str:
    if isinstance(data, (dict, list)):
        return json.dumps(data, ensure_ascii=False, indent=2, default=str)
    return "" if data is None else str(data)


def attach_logging_sink(
    channels: EventChannels,
    logger: Optional[logging.Logger] = None,
    *,
    progress_step: float = 10.0,
) -> Callable[[], None]:
    """订阅三路事件并写入 logger，返回一次性取消订阅函数。

    进度事件默认只在每跨过 progress_step 个百分点时以 INFO 输出，其余为 DEBUG。
    """

    log = logger or get_logger("vidshorts.events")
    last_logged: dict[tuple[Optional[str], str], float] = {}

    def on_processing(event: ProcessingEvent) -> None:
        if isinstance(event, ProgressEvent):
            key = (event.video, event.stage.value)
            percentage = event.progress.percentage
            previous = last_logged.get(key, -progress_step)
            if percentage is not None and (percentage - previous >= progress_step or percentage >= 100.0):
                last_logged[key] = percentage
                log.info("%s%s", _prefix(event.video), event.message)
            else:
                log.debug("%s%s", _prefix(event.video), event.message)
            return
        log.info("%s%s", _prefix(event.video), event.message)

    def on_error(event: ErrorEvent) -> None:
        level = logging.WARNING if event.level == "warning" else logging.ERROR
        log.log(level, "%s%s", _prefix(event.video), event.message, exc_info=event.error)
        if event.data:
            log.debug("%sError data: %s", _prefix(event.video), _render(event.data))

    def on_debug(event: DebugEvent) -> None:
        if not log.isEnabledFor(logging.DEBUG):
            return
        log.debug("%s%s %s", _prefix(event.video), event.message, _render(event.data))

    unsubscribers: List[Callable[[], None]] = [
        channels.processing.subscribe(on_processing),
        channels.error.subscribe(on_error),
        channels.debug.subscribe(on_debug),
    ]

    def detach() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return detach
