"""输出与原图的视觉相似度：在输出尺寸上计算高斯窗口 SSIM。

有损压缩在达不到目标体积时会一路降低质量，这里给出的分数用来判断
结果是否仍然“看起来像原图”。透明区域按与 JPEG 输出相同的方式混合到白色背景上，
避免 Alpha 扁平化本身被计为失真。
"""

from __future__ import annotations

import io
import logging

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from image_transcoder.core.config import TargetFormat
from image_transcoder.core.exceptions import DecodeError
from image_transcoder.processing.codecs import FORMATS, prepare_for_format

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

GAUSSIAN_WINDOW = (11, 11)
GAUSSIAN_SIGMA = 1.5
LOW_SIMILARITY_THRESHOLD = 0.8

_C1 = (0.01 * 255) ** 2
_C2 = (0.03 * 255) ** 2


def measure_similarity(original: Image.Image, output_bytes: bytes) -> float:
    """解码输出字节并返回其与原位图的 SSIM，范围 [-1, 1]。"""

    try:
        with io.BytesIO(output_bytes) as handle, Image.open(handle) as produced:
            produced.load()
            return structural_similarity(original, produced)
    except (UnidentifiedImageError, OSError) as exc:
        raise DecodeError("无法解码输出文件以计算相似度") from exc


def structural_similarity(reference: Image.Image, candidate: Image.Image) -> float:
    """以 candidate 的尺寸为准计算平均 SSIM。"""

    size = candidate.size
    if size[0] <= 0 or size[1] <= 0:
        return 0.0

    a = _luminance(reference, size)
    b = _luminance(candidate, size)

    mu_a = _blur(a)
    mu_b = _blur(b)
    mu_a_sq = mu_a * mu_a
    mu_b_sq = mu_b * mu_b
    mu_ab = mu_a * mu_b
    sigma_a_sq = _blur(a * a) - mu_a_sq
    sigma_b_sq = _blur(b * b) - mu_b_sq
    sigma_ab = _blur(a * b) - mu_ab

    ssim_map = ((2 * mu_ab + _C1) * (2 * sigma_ab + _C2)) / (
        (mu_a_sq + mu_b_sq + _C1) * (sigma_a_sq + sigma_b_sq + _C2)
    )
    return float(np.clip(ssim_map.mean(), -1.0, 1.0))


def looks_like_source(score: float | None) -> bool:
    """相似度是否高于告警阈值；未计算时视为通过。"""

    return score is None or score >= LOW_SIMILARITY_THRESHOLD


def _blur(array: np.ndarray) -> np.ndarray:
    return cv2.GaussianBlur(array, GAUSSIAN_WINDOW, GAUSSIAN_SIGMA)


def _luminance(image: Image.Image, size: tuple[int, int]) -> np.ndarray:
    flattened = prepare_for_format(image, FORMATS[TargetFormat.JPEG])
    try:
        if flattened.size != size:
            resized = flattened.resize(size, _RESAMPLING.LANCZOS)
            flattened.close()
            flattened = resized
        gray = flattened.convert("L")
    finally:
        flattened.close()
    try:
        return np.asarray(gray, dtype=np.float64)
    finally:
        gray.close()
