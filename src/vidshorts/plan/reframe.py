"""竖屏重构滤镜：缩放内容、居中裁剪到 9:16，再上下补黑边。"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class ReframeSpec:
    """重构参数。

    - max_height: 输出画面高度上限（像素）。
    - content_ratio: 内容区域占画面高度的比例，其余为上下黑边。
    """

    max_height: int = 1920
    content_ratio: float = 0.85

    def __post_init__(self) -> None:
        if self.max_height <= 0:
            raise ValueError("max_height must be positive")
        if not 0.0 < self.content_ratio <= 1.0:
            raise ValueError("content_ratio must be in (0, 1]")


def _even(expr: str) -> str:
    # libx264 的 yuv420p 要求宽高为偶数
    return f"round(({expr})/2)*2"


def build_reframe_chain(spec: ReframeSpec | None = None) -> str:
    """返回 scale,crop,pad 滤镜链，表达式中的逗号已按 filtergraph 语法转义。

    每个滤镜都只依赖自身输入尺寸：
    - scale: 画面高 = min(源高/ratio, max_height)，内容高 = 画面高 * ratio；
    - crop: 以内容高反推画面高，居中裁出 9:16 的画面宽；
    - pad: 补足到画面高，黑边上下均分。
    """

    spec = spec or ReframeSpec()
    ratio = f"{spec.content_ratio:g}"
    content_height = _even(f"min(ih/{ratio}\\,{spec.max_height})*{ratio}")
    frame_width = _even(f"ih/{ratio}*9/16")
    frame_height = _even(f"ih/{ratio}")
    return ",".join(
        [
            f"scale=-2:{content_height}",
            f"crop={frame_width}:ih:(iw-{frame_width})/2:0",
            f"pad=iw:{frame_height}:0:(oh-ih)/2:black",
        ]
    )
