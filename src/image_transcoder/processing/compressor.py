"""目标体积压缩：逐步降低质量重新编码，直到满足体积预算。"""

from __future__ import annotations

import logging
from typing import Optional

from PIL import Image

from image_transcoder.core.config import QUALITY_STEP, TargetFormat
from image_transcoder.core.exceptions import EncodeError
from image_transcoder.core.models import CompressionResult
from image_transcoder.processing.codecs import FORMATS, MIN_QUALITY, bytes_to_kib, encode_image, percent_reduction

LOGGER = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
LOSSY_FORMAT = FORMATS[TargetFormat.JPEG]


def compress_to_target(
    bitmap: Image.Image,
    target_size_kb: float,
    initial_quality: float = 0.8,
    *,
    original_size: Optional[int] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> CompressionResult:
    """以有损格式重新编码位图，逐次降低质量直到体积不超过 ``target_size_kb``。

    每次尝试都测量真实的编码结果。达到尝试上限仍未满足预算时，返回最后一次
    （质量最低）的编码，作为尽力而为的结果而不是错误。原始文件本就小于目标时
    仍会执行一次编码，不会提升质量或填充数据。

    ``original_size`` 为原始文件字节数，用于计算压缩率；缺省时以首次编码体积为基准。
    """

    if target_size_kb <= 0:
        raise EncodeError(f"目标大小必须大于 0: {target_size_kb}")
    if max_attempts <= 0:
        raise EncodeError(f"尝试次数必须大于 0: {max_attempts}")

    target_bytes = target_size_kb * 1024
    quality = _clamp_quality(initial_quality)
    history: list[float] = []
    data = b""

    for attempt in range(1, max_attempts + 1):
        data = encode_image(bitmap, LOSSY_FORMAT, quality)
        history.append(quality)
        LOGGER.debug("第 %d 次尝试：质量=%.2f，大小=%d 字节，目标=%d 字节", attempt, quality, len(data), target_bytes)

        if len(data) <= target_bytes:
            break
        if quality <= MIN_QUALITY:
            # 已到质量下限，继续编码只会得到相同结果。
            break
        if attempt < max_attempts:
            quality = _clamp_quality(quality - QUALITY_STEP)

    baseline = original_size if original_size and original_size > 0 else len(data)
    target_met = len(data) <= target_bytes
    if not target_met:
        LOGGER.info("未能达到目标大小 %.0f KB，返回最低质量结果 %.2f KB", target_size_kb, bytes_to_kib(len(data)))

    return CompressionResult(
        output_bytes=data,
        achieved_size_kb=bytes_to_kib(len(data)),
        achieved_quality=history[-1],
        compression_ratio_percent=percent_reduction(baseline, len(data)),
        attempts=len(history),
        target_met=target_met,
        quality_history=tuple(history),
    )


def _clamp_quality(value: float) -> float:
    """保持两位小数网格并限制在 [MIN_QUALITY, 1.0]。"""

    return max(MIN_QUALITY, min(1.0, round(value, 2)))
