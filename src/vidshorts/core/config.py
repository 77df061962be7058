"""配置加载工具，集中管理仓内/环境参数。"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Sequence, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .paths import TEMP_ENV_KEY, resolve_temp_root

CONFIG_ENV_KEY = "VIDSHORTS_CONFIG_PATH"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"


class AnalyzerConfig(BaseModel):
    """分类器配置：三类动作的判定标准、置信度阈值与接口凭证。

    同时接受旧版 JSON 的驼峰字段（speedUp、openaiApiKey 等）。
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    speed_up: Optional[str] = Field(default=None, validation_alias=AliasChoices("speed_up", "speedUp"))
    remove: Optional[str] = None
    keep: Optional[str] = None
    confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("confidence_threshold", "confidenceThreshold"),
    )
    api_key: str = Field(min_length=1, validation_alias=AliasChoices("api_key", "openai_api_key", "openaiApiKey"))
    model: str = Field(default=DEFAULT_MODEL, validation_alias=AliasChoices("model", "openai_model", "openaiModel"))
    base_url: str = Field(default=DEFAULT_BASE_URL, validation_alias=AliasChoices("base_url", "openai_base_url", "openaiBaseUrl"))
    timeout_s: float = Field(default=60.0, gt=0)


class ProcessorConfig(BaseModel):
    """单视频处理参数，默认值与旧版 CLI 保持一致。"""

    frame_interval: float = Field(default=60.0, gt=0)
    parallel_frames: int = Field(default=3, ge=1)
    output_dir: Optional[Path] = None
    temp_dir: Path = Field(default_factory=resolve_temp_root)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    save_actions: bool = Field(default=False, description="在输出目录旁写出 <name>.actions.json，便于离线复现规划。")


class SchedulerConfig(BaseModel):
    """跨视频并发参数；jobs 为空时取 CPU 核数。"""

    jobs: Optional[int] = Field(default=None, ge=1)
    poll_interval_s: float = Field(default=0.1, gt=0)


class ExportConfig(BaseModel):
    """导出阶段参数：编码器与竖屏重构尺寸。"""

    ffmpeg_cmd: str = "ffmpeg"
    ffprobe_cmd: str = "ffprobe"
    video_codec: str = "libx264"
    preset: str = "veryfast"
    crf: int = 18
    max_height: int = Field(default=1920, gt=0)
    content_ratio: float = Field(default=0.85, gt=0, le=1)


class PipelineConfig(BaseModel):
    """聚合各阶段配置。analyzer 保留原始字典，在构造分类器时才校验。"""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    analyzer: Dict[str, Any] = Field(default_factory=dict)
    raw: Dict[str, Any] = Field(default_factory=dict, description="原始配置字典，便于调试。")

    def model_post_init(self, __context: Any) -> None:  # type: ignore[override]
        if not self.raw:
            self.raw = self.to_raw_dict()

    def to_raw_dict(self) -> Dict[str, Any]:
        """导出基础 dict，供日志输出使用；密钥会被遮蔽。"""

        analyzer = dict(self.analyzer)
        for key in ("api_key", "openai_api_key", "openaiApiKey"):
            if analyzer.get(key):
                analyzer[key] = "***"
        return {
            "processor": self.processor.model_dump(mode="json"),
            "scheduler": self.scheduler.model_dump(),
            "export": self.export.model_dump(),
            "analyzer": analyzer,
        }


def _default_config_path() -> Path:
    return Path(__file__).resolve().parents[3] / "configs" / "baseline.yaml"


def _load_local_env(path: str | Path | None = None) -> None:
    """加载本地 .env，已有环境变量优先。"""

    load_dotenv(dotenv_path=path, override=False)


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"配置文件 {path} 内容需为字典")
        return data


ENV_OVERRIDE_MAP: Dict[str, Tuple[Sequence[str], Callable[[str], Any]]] = {
    "VIDSHORTS_FRAME_INTERVAL": (("processor", "frame_interval"), float),
    "VIDSHORTS_PARALLEL_FRAMES": (("processor", "parallel_frames"), int),
    "VIDSHORTS_JOBS": (("scheduler", "jobs"), int),
    "OPENAI_API_KEY": (("analyzer", "api_key"), str),
    "VIDSHORTS_MODEL": (("analyzer", "model"), str),
    "OPENAI_BASE_URL": (("analyzer", "base_url"), str),
}


def _apply_env_overrides(data: MutableMapping[str, Any], env: Mapping[str, str]) -> None:
    for env_key, (path, caster) in ENV_OVERRIDE_MAP.items():
        if env.get(env_key):
            _set_nested_value(data, path, caster(env[env_key]))


def _set_nested_value(target: MutableMapping[str, Any], path: Sequence[str], value: Any) -> None:
    cursor: MutableMapping[str, Any] = target
    *parents, last = path
    for key in parents:
        if key not in cursor or not isinstance(cursor[key], MutableMapping):
            cursor[key] = {}
        cursor = cursor[key]  # type: ignore[assignment]
    cursor[last] = value


def load_config(path: str | Path | None = None, *, env: Mapping[str, str] | None = None) -> PipelineConfig:
    """加载配置：优先显式路径，其次环境变量，最后回退默认 baseline。"""

    env_map = os.environ if env is None else env
    config_path = path or env_map.get(CONFIG_ENV_KEY)
    target_path = Path(config_path).expanduser() if config_path else _default_config_path()
    data = _load_yaml(target_path)
    _apply_env_overrides(data, env_map)

    temp_override = env_map.get(TEMP_ENV_KEY)
    if temp_override:
        _set_nested_value(data, ("processor", "temp_dir"), str(Path(temp_override).expanduser()))

    cfg = PipelineConfig.model_validate({**data, "raw": {}})
    return cfg
