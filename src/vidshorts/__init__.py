"""vidshorts：长视频抽帧分析后裁剪、变速并重构为竖屏短视频。"""

__version__ = "0.1.0"
