"""输入目录扫描。"""

from __future__ import annotations

from pathlib import Path
from typing import List

from vidshorts.core.errors import InputError

VIDEO_EXTENSIONS = frozenset({".mp4", ".avi", ".mov"})


def discover_videos(input_dir: str | Path) -> List[Path]:
    """返回目录下扩展名受支持的视频文件（不递归，按文件名排序）。

    目录不存在、不是目录或没有任何视频时抛出 InputError。
    """

    directory = Path(input_dir).expanduser().resolve()
    if not directory.exists():
        raise InputError(f"Input directory does not exist: {directory}")
    if not directory.is_dir():
        raise InputError(f"Input path is not a directory: {directory}")

    videos = sorted(
        path for path in directory.iterdir() if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS
    )
    if not videos:
        raise InputError(f"No videos found in the input directory: {directory}", details={"directory": str(directory)})
    return videos
