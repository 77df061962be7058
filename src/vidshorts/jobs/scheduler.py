"""跨视频任务调度：FIFO 队列 + 并发上限 + 轮询放行。"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import os
from pathlib import Path
import threading
import time
from typing import Callable, Deque, Dict, Generic, Iterable, List, Optional, Set, TypeVar

from vidshorts.core.events import EventChannels
from vidshorts.core.logging_utils import get_logger

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")


def resolve_concurrency(requested: Optional[int], cpu_count: Optional[int] = None) -> int:
    """把请求的并发数钳制到 [1, CPU 核数]；未指定时取核数。"""

    cores = cpu_count or os.cpu_count() or 1
    if requested is None:
        return cores
    return max(1, min(int(requested), cores))


@dataclass(slots=True)
class SchedulerReport(Generic[ItemT, ResultT]):
    completed: Dict[ItemT, ResultT] = field(default_factory=dict)
    failed: Dict[ItemT, BaseException] = field(default_factory=dict)
    peak_in_flight: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed


class JobScheduler(Generic[ItemT, ResultT]):
    """每个放行的任务占用一个工作线程；同时在途数不超过 max_concurrent。

    单个任务抛错只记录到 failed 并发出错误事件，不影响其余任务。
    """

    def __init__(
        self,
        worker: Callable[[ItemT], ResultT],
        *,
        max_concurrent: int,
        poll_interval: float = 0.1,
        channels: Optional[EventChannels] = None,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._worker = worker
        self._max_concurrent = max_concurrent
        self._poll_interval = poll_interval
        self._channels = channels or EventChannels()
        self._lock = threading.Lock()
        self._queue: Deque[ItemT] = deque()
        self._in_flight: Set[ItemT] = set()
        self._threads: List[threading.Thread] = []
        self._report: SchedulerReport[ItemT, ResultT] = SchedulerReport()
        self.logger = get_logger(__name__)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def run(self, items: Iterable[ItemT]) -> SchedulerReport[ItemT, ResultT]:
        """阻塞直到队列与在途集合都为空。"""

        with self._lock:
            self._queue.extend(items)
            self._report = SchedulerReport()
        self.logger.debug("Scheduling %d jobs, max %d concurrent", len(self._queue), self._max_concurrent)

        while True:
            item = None
            with self._lock:
                if not self._queue and not self._in_flight:
                    break
                if self._queue and len(self._in_flight) < self._max_concurrent:
                    item = self._queue.popleft()
                    self._in_flight.add(item)
                    self._report.peak_in_flight = max(self._report.peak_in_flight, len(self._in_flight))
            if item is None:
                time.sleep(self._poll_interval)
                continue
            thread = threading.Thread(target=self._run_task, args=(item,), name=f"job-{item}", daemon=True)
            self._threads.append(thread)
            thread.start()

        for thread in self._threads:
            thread.join()
        self._threads.clear()
        return self._report

    def _run_task(self, item: ItemT) -> None:
        try:
            result = self._worker(item)
        except Exception as exc:
            label = item.name if isinstance(item, Path) else str(item)
            self.logger.debug("Job %s failed", label, exc_info=True)
            self._channels.bind(label).error(f"Error processing {label}: {exc}", error=exc)
            with self._lock:
                self._report.failed[item] = exc
        else:
            with self._lock:
                self._report.completed[item] = result
        finally:
            with self._lock:
                self._in_flight.discard(item)
