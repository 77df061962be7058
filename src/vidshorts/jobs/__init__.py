"""任务层：输入扫描、单视频处理与跨视频调度。"""

from .inputs import VIDEO_EXTENSIONS, discover_videos
from .job import VideoJob, derive_job_name
from .processor import VideoProcessor, job_workspace
from .scheduler import JobScheduler, SchedulerReport, resolve_concurrency

__all__ = [
    "VIDEO_EXTENSIONS",
    "discover_videos",
    "VideoJob",
    "derive_job_name",
    "VideoProcessor",
    "job_workspace",
    "JobScheduler",
    "SchedulerReport",
    "resolve_concurrency",
]
