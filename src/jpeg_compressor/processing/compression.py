"""JPEG 压缩服务：按档位限制尺寸与体积。"""

from __future__ import annotations

import io
import logging
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from jpeg_compressor.core.artifacts import Artifact
from jpeg_compressor.core.config import EncoderConfig, Profile
from jpeg_compressor.core.exceptions import CompressionFailure

LOGGER = logging.getLogger(__name__)


class CompressionService:
    """把源字节压缩为符合档位约束的 JPEG。

    服务与条目身份无关，不会修改传入的源数据；
    每次调用都会分配新的 Artifact，由调用者负责释放。
    """

    def __init__(self, config: Optional[EncoderConfig] = None) -> None:
        self.config = config or EncoderConfig()

    def compress(self, source: bytes, profile: Profile) -> Artifact:
        image = load_image(source)
        try:
            original_size = image.size
            base_size = fit_within(original_size, profile.max_dimension)
            downscaled = base_size != original_size
            # 缩小尺寸后无法沿用源文件，目标体积同时不得超过源文件。
            ceiling = len(source) if downscaled else None
            data, size, quality = self._encode_to_target(image, base_size, profile.max_size_bytes, ceiling)
        finally:
            image.close()

        if len(data) > len(source) and not downscaled:
            # 重新编码反而变大且尺寸无需缩小时，直接沿用源文件。
            LOGGER.debug("压缩结果 %d 字节大于源文件 %d 字节，沿用源文件", len(data), len(source))
            return Artifact(bytes(source), width=original_size[0], height=original_size[1], quality=None)

        LOGGER.debug(
            "压缩完成：%dx%d -> %dx%d，质量 %d，%d -> %d 字节",
            original_size[0],
            original_size[1],
            size[0],
            size[1],
            quality,
            len(source),
            len(data),
        )
        return Artifact(data, width=size[0], height=size[1], quality=quality)

    def _encode_to_target(
        self,
        image: Image.Image,
        base_size: Tuple[int, int],
        max_bytes: int,
        ceiling: Optional[int] = None,
    ) -> Tuple[bytes, Tuple[int, int], int]:
        """逐步降低尺寸与质量，直到体积达标或迭代次数用尽。

        给出 ceiling 时，迭代目标为 min(max_bytes, ceiling)；迭代次数用尽后
        若仍超过 ceiling，则以最低质量继续缩小尺寸，直到不超过 ceiling。
        """

        cfg = self.config
        quality = cfg.initial_quality
        size = base_size
        data = self._encode(image, size, quality)

        iteration = 0
        target = max_bytes if ceiling is None else min(max_bytes, ceiling)
        while len(data) > target and iteration < cfg.max_iterations:
            iteration += 1
            factor = cfg.step_ratio**iteration
            size = (max(1, round(base_size[0] * factor)), max(1, round(base_size[1] * factor)))
            quality = max(cfg.min_quality, round(cfg.initial_quality * factor))
            data = self._encode(image, size, quality)

        if ceiling is not None:
            while len(data) > ceiling and size != (1, 1):
                iteration += 1
                size = (max(1, int(size[0] * cfg.step_ratio)), max(1, int(size[1] * cfg.step_ratio)))
                quality = cfg.min_quality
                data = self._encode(image, size, quality)

        if len(data) > max_bytes:
            LOGGER.info("迭代 %d 次后仍超出目标体积：%d > %d 字节", iteration, len(data), max_bytes)
        return data, size, quality

    def _encode(self, image: Image.Image, size: Tuple[int, int], quality: int) -> bytes:
        frame = image if image.size == size else image.resize(size, Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        try:
            frame.save(
                buffer,
                format="JPEG",
                quality=quality,
                optimize=True,
                progressive=self.config.progressive,
            )
        except (OSError, ValueError) as exc:
            raise CompressionFailure(f"JPEG 编码失败: {exc}") from exc
        finally:
            if frame is not image:
                frame.close()
        return buffer.getvalue()


def fit_within(size: Tuple[int, int], max_dimension: int) -> Tuple[int, int]:
    """等比缩放，使最长边不超过 max_dimension。"""

    width, height = size
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def load_image(source: bytes) -> Image.Image:
    """解码源字节并执行 EXIF 旋转与 RGB 归一化。

    返回值为新的 Image 对象，调用者负责关闭。
    """

    try:
        with Image.open(io.BytesIO(source)) as img:
            img.load()
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = _convert_to_rgb(img)
            return img.copy()
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像数据: %s", exc)
        raise CompressionFailure("无法解码图像数据") from exc


def _convert_to_rgb(img: Image.Image) -> Image.Image:
    if img.mode in {"RGBA", "LA"}:
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img.convert("RGBA"), mask=img.convert("RGBA").split()[-1])
        return background
    return img.convert("RGB")
