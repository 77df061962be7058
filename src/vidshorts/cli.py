"""vidshorts Typer CLI：批量把长视频处理为竖屏短视频。"""

from __future__ import annotations

import json
from pathlib import Path
import shutil
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from vidshorts import __version__
from vidshorts.analyze import FrameClassifier
from vidshorts.core import (
    ActionMap,
    EventChannels,
    PipelineConfig,
    ProcessorConfig,
    VidShortsError,
    attach_logging_sink,
    get_logger,
    load_config,
    setup_logging,
)
from vidshorts.core.config import _load_local_env
from vidshorts.core.paths import default_output_dir
from vidshorts.jobs import JobScheduler, VideoProcessor, discover_videos, resolve_concurrency
from vidshorts.plan import ReframeSpec, plan_segments

_load_local_env()
app = typer.Typer(help="vidshorts：长视频转竖屏短视频 CLI")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"vidshorts v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="显示版本号并退出",
    ),
) -> None:
    """vidshorts 顶层 CLI。"""

    return None


def _resolve_config(config_path: Optional[Path]) -> PipelineConfig:
    return load_config(config_path) if config_path else load_config()


def _ensure_ffmpeg(cmd: str) -> None:
    if shutil.which(cmd) is None:
        raise VidShortsError(f"FFmpeg not found: '{cmd}' is not on PATH. Please install FFmpeg and retry.")


def _parse_criteria(value: str) -> Dict[str, Any]:
    """--criteria 既可以是 JSON 字符串，也可以是 JSON 文件路径。"""

    try:
        payload = json.loads(value)
    except json.JSONDecodeError:
        try:
            payload = json.loads(Path(value).expanduser().read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ValueError(
                "Failed to parse analyzer config. Input must be a valid JSON string or path to a JSON file. "
                f"Error: {exc}"
            ) from exc
    if not isinstance(payload, dict):
        raise ValueError("Analyzer config JSON must be an object")
    return payload


def _apply_processor_overrides(cfg: PipelineConfig, **overrides: Any) -> PipelineConfig:
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return cfg
    processor = ProcessorConfig.model_validate({**cfg.processor.model_dump(), **updates})
    return cfg.model_copy(update={"processor": processor})


def _build_analyzer_settings(
    cfg: PipelineConfig,
    *,
    criteria: Optional[str],
    api_key: Optional[str],
) -> Optional[Dict[str, Any]]:
    """合并配置文件、环境变量与命令行参数；三者都为空时返回 None（仅重构模式）。"""

    settings: Dict[str, Any] = dict(cfg.analyzer)
    if criteria:
        settings.update(_parse_criteria(criteria))
    if api_key:
        settings["api_key"] = api_key
    return settings or None


@app.command("process")
def process_cmd(
    input_dir: Path = typer.Argument(..., help="包含待处理视频的输入目录"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出目录，默认 <input>/video-to-shorts"),
    temp: Optional[Path] = typer.Option(None, "--temp", "-t", help="抽帧临时目录根"),
    frame_interval: Optional[float] = typer.Option(
        None, "--frame-interval", "-f", help="每隔 N 秒分析一帧（越大越快但越粗糙）"
    ),
    parallel_frames: Optional[int] = typer.Option(None, "--parallel-frames", "-p", help="单个视频内并发分类的帧数"),
    criteria: Optional[str] = typer.Option(None, "--criteria", "-c", help="分类标准：JSON 字符串或 JSON 文件路径"),
    openai_api_key: Optional[str] = typer.Option(None, "--openai-api-key", "-k", help="OpenAI API key"),
    start: Optional[str] = typer.Option(None, "--start", "-s", help="开始时间 (HH:MM:SS 或 MM:SS)"),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="结束时间 (HH:MM:SS 或 MM:SS)"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", help="同时处理的视频数（上限为 CPU 核数）"),
    save_actions: bool = typer.Option(False, "--save-actions", help="在输出目录写出每个视频的帧分类结果 JSON"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件 (YAML)"),
    debug: bool = typer.Option(False, "--debug", "-d", help="输出调试日志"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """批量处理输入目录中的视频。"""

    setup_logging("DEBUG" if debug else log_level)
    logger = get_logger("vidshorts.cli")
    logger.info("Video to Shorts CLI v%s", __version__)

    resolved_input = input_dir.expanduser().resolve()
    output_dir = output.expanduser().resolve() if output else default_output_dir(resolved_input)

    try:
        cfg = _resolve_config(config_path)
        cfg = _apply_processor_overrides(
            cfg,
            frame_interval=frame_interval,
            parallel_frames=parallel_frames,
            output_dir=output_dir,
            temp_dir=temp.expanduser().resolve() if temp else None,
            start_time=start,
            end_time=end,
            save_actions=save_actions or None,
        )
        _ensure_ffmpeg(cfg.export.ffmpeg_cmd)
        videos = discover_videos(resolved_input)
        settings = _build_analyzer_settings(cfg, criteria=criteria, api_key=openai_api_key)
        classifier = FrameClassifier(settings) if settings is not None else None
    except (VidShortsError, ValueError, ValidationError) as exc:
        typer.echo(f"错误：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    logger.debug("Config: %s", json.dumps(cfg.to_raw_dict(), ensure_ascii=False, default=str))
    logger.debug("Found %d videos in %s: %s", len(videos), resolved_input, [video.name for video in videos])
    if classifier is None:
        logger.warning("No analyzer configured (missing API key); videos will only be reframed")

    max_concurrent = resolve_concurrency(jobs if jobs is not None else cfg.scheduler.jobs)
    logger.info("Processing up to %d videos concurrently", max_concurrent)

    channels = EventChannels()
    detach = attach_logging_sink(channels)
    try:
        processor = VideoProcessor(cfg, classifier=classifier, channels=channels)
        processor.assign_names(videos)
        scheduler = JobScheduler(
            processor.process_video,
            max_concurrent=max_concurrent,
            poll_interval=cfg.scheduler.poll_interval_s,
            channels=channels,
        )
        report = scheduler.run(videos)
    finally:
        detach()

    typer.echo(f"完成 {len(report.completed)} / {len(videos)} 个视频，输出目录 {output_dir}")
    if report.failed:
        for video in report.failed:
            typer.echo(f" - 失败：{video.name}", err=True)
        raise typer.Exit(code=1)


@app.command("plan")
def plan_cmd(
    actions_path: Path = typer.Argument(..., exists=True, dir_okay=False, resolve_path=True, help="帧分类结果 JSON（--save-actions 产出）"),
    threshold: float = typer.Option(0.7, "--threshold", min=0.0, max=1.0, help="置信度阈值"),
    interval: float = typer.Option(60.0, "--interval", help="抽帧间隔（秒）"),
    audio: bool = typer.Option(False, "--audio", help="源视频带音轨时同时生成音频裁剪链"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="规划 JSON 输出路径，缺省打印到 stdout"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="自定义配置文件（读取竖屏重构参数）"),
    log_level: str = typer.Option("INFO", "--log-level", help="日志级别"),
) -> None:
    """离线把帧分类结果转换为片段规划与滤镜图。"""

    setup_logging(log_level)
    cfg = _resolve_config(config_path)
    try:
        payload = json.loads(actions_path.read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ValueError("Action map JSON must be an object keyed by seconds")
        actions = ActionMap.from_dict(payload)
        plan = plan_segments(
            actions,
            threshold=threshold,
            interval=interval,
            reframe=ReframeSpec(max_height=cfg.export.max_height, content_ratio=cfg.export.content_ratio),
            audio=audio,
        )
    except (ValueError, KeyError, TypeError) as exc:
        typer.echo(f"错误：无法生成规划：{exc}", err=True)
        raise typer.Exit(code=1) from exc

    text = json.dumps(plan.to_dict(), ensure_ascii=False, indent=2)
    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        typer.echo(f"生成 {len(plan.segments)} 个片段，输出到 {output}")
    else:
        typer.echo(text)


if __name__ == "__main__":  # pragma: no cover
    app()
