"""颜色工具函数。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image

from image_transcoder.core.exceptions import InvalidConfigurationError

ALPHA_THRESHOLD = 128
TOP_COLORS = 10


@dataclass(frozen=True, slots=True)
class ColorCount:
    color: Tuple[int, int, int]
    count: int

    @property
    def hex(self) -> str:
        return rgb_to_hex(*self.color)


@dataclass(frozen=True, slots=True)
class ColorAnalysis:
    """主色分析结果。"""

    dominant_colors: list[ColorCount]
    total_pixels: int
    sampled_pixels: int


def rgb_to_hex(r: int, g: int, b: int) -> str:
    for channel in (r, g, b):
        if not 0 <= channel <= 255:
            raise InvalidConfigurationError(f"颜色分量超出范围: {channel}")
    return f"#{r:02x}{g:02x}{b:02x}"


def analyze_colors(image: Image.Image, sample_size: int = 10) -> ColorAnalysis:
    """每隔 ``sample_size`` 个像素采样，统计不透明像素中出现最多的颜色。"""

    if sample_size <= 0:
        raise InvalidConfigurationError(f"采样间隔必须大于 0: {sample_size}")

    pixels = np.asarray(image.convert("RGBA"), dtype=np.uint8).reshape(-1, 4)
    sampled = pixels[::sample_size]
    opaque = sampled[sampled[:, 3] > ALPHA_THRESHOLD][:, :3]

    dominant: list[ColorCount] = []
    if len(opaque):
        colors, counts = np.unique(opaque, axis=0, return_counts=True)
        # 次数相同时保持颜色值升序
        order = np.argsort(-counts, kind="stable")[:TOP_COLORS]
        dominant = [
            ColorCount(color=(int(colors[i][0]), int(colors[i][1]), int(colors[i][2])), count=int(counts[i]))
            for i in order
        ]

    return ColorAnalysis(
        dominant_colors=dominant,
        total_pixels=image.width * image.height,
        sampled_pixels=len(sampled),
    )
