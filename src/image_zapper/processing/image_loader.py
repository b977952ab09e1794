"""图片解码：只保留像素数据。"""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from image_zapper.core.exceptions import DecodeError

LOGGER = logging.getLogger(__name__)


def decode_image(path: Path) -> Image.Image:
    """加载单张图片，执行 EXIF 旋转后按原始像素重建图像。

    重建后的图像不携带 EXIF、文本块、ICC 等任何附加信息。
    返回值为新的 Image 对象，调用者负责关闭。
    """

    try:
        with Image.open(path) as img:
            img.load()

            # EXIF Orientation 校正，元数据丢弃后方向仍然正确
            oriented = ImageOps.exif_transpose(img)
            if oriented.mode == "P":
                oriented = _convert_palette(oriented)

            return _pixels_only(oriented)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像文件 %s: %s", path, exc)
        raise DecodeError(f"无法解码图像: {path}: {exc}") from exc


def _convert_palette(img: Image.Image) -> Image.Image:
    """调色板模式转换为直接像素模式，保留透明度。"""

    if "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


def _pixels_only(img: Image.Image) -> Image.Image:
    return Image.frombytes(img.mode, img.size, img.tobytes())
