"""路径工具：临时目录根、默认输出目录与任务名去重。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, List

TEMP_ENV_KEY = "VIDSHORTS_TEMP_DIR"
OUTPUT_DIRNAME = "video-to-shorts"


def resolve_temp_root(default: Path | None = None) -> Path:
    """根据环境变量或默认值确定抽帧临时目录根。"""

    env_value = os.getenv(TEMP_ENV_KEY)
    if env_value:
        return Path(env_value).expanduser().resolve()
    if default is not None:
        return default.expanduser().resolve()
    return Path.cwd() / ".temp"


def default_output_dir(input_dir: Path) -> Path:
    """未指定输出目录时，成片写到输入目录下的 video-to-shorts/。"""

    return input_dir / OUTPUT_DIRNAME


def unique_names(names: Iterable[str], taken: Iterable[str] = ()) -> List[str]:
    """按顺序为每个名称去重，重名依次追加 -2、-3。

    比较时忽略大小写，避免在大小写不敏感的文件系统上共用临时目录或输出文件。
    """

    claimed = {name.casefold() for name in taken}
    result: List[str] = []
    for name in names:
        candidate = name
        counter = 1
        while candidate.casefold() in claimed:
            counter += 1
            candidate = f"{name}-{counter}"
        claimed.add(candidate.casefold())
        result.append(candidate)
    return result
