"""解码 -> 编码 -> 可选 PNG 重压缩。"""

from __future__ import annotations

import io
import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import Callable, Type

from PIL import Image

from image_zapper.core.exceptions import EncodeError, FileProcessingError, OptimizeError
from image_zapper.processing.image_loader import decode_image

LOGGER = logging.getLogger(__name__)

SUPPORTED_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
}

# 各格式可直接写出的像素模式，其余模式转换为 RGB。
ENCODABLE_MODES = {
    "JPEG": {"L", "RGB"},
    "PNG": {"1", "L", "LA", "I", "I;16", "RGB", "RGBA"},
}


def format_for(destination: Path) -> str:
    suffix = destination.suffix.lower()
    image_format = SUPPORTED_FORMATS.get(suffix)
    if not image_format:
        raise EncodeError(f"不支持的输出格式: {suffix or destination.name}")
    return image_format


def _temporary_sibling(destination: Path) -> Path:
    # 同目录、不可预测的文件名；并发写同一目标时互不干扰。
    return destination.with_name(f".{destination.name}.{uuid.uuid4().hex[:12]}.tmp")


def replace_atomically(
    destination: Path,
    write: Callable[[Path], None],
    error_type: Type[FileProcessingError],
) -> None:
    """先写入同目录临时文件，再 ``os.replace`` 覆盖目标。

    任何失败都不会改动已有的目标文件，临时文件总会被清理。
    """

    tmp = _temporary_sibling(destination)
    try:
        write(tmp)
        if destination.exists():
            shutil.copymode(destination, tmp)
        os.replace(tmp, destination)
    except (OSError, ValueError) as exc:
        raise error_type(f"写入文件失败: {destination}: {exc}") from exc
    finally:
        tmp.unlink(missing_ok=True)


def encode_image(image: Image.Image, destination: Path) -> None:
    """按目标扩展名对应的格式、以默认参数写出图像。"""

    image_format = format_for(destination)

    image_to_save = image
    try:
        if image.mode not in ENCODABLE_MODES[image_format]:
            image_to_save = image.convert("RGB")
    except ValueError as exc:
        raise EncodeError(f"无法转换像素模式 {image.mode}: {exc}") from exc

    try:
        replace_atomically(
            destination,
            lambda tmp: image_to_save.save(tmp, format=image_format),
            EncodeError,
        )
    finally:
        if image_to_save is not image:
            image_to_save.close()


def recompress_png(data: bytes) -> bytes:
    """PNG 无损重压缩，返回不大于输入的字节串。"""

    try:
        with Image.open(io.BytesIO(data)) as im:
            buffer = io.BytesIO()
            im.save(buffer, format="PNG", optimize=True, compress_level=9)
    except (OSError, ValueError) as exc:
        raise OptimizeError(f"PNG 重压缩失败: {exc}") from exc

    optimized = buffer.getvalue()
    if len(optimized) < len(data):
        return optimized
    return data


def optimize_png_file(path: Path) -> int:
    """重压缩已写出的 PNG，返回节省的字节数。"""

    try:
        original = path.read_bytes()
    except OSError as exc:
        raise OptimizeError(f"读取待优化文件失败: {path}: {exc}") from exc

    optimized = recompress_png(original)
    saved = len(original) - len(optimized)
    if saved <= 0:
        return 0

    replace_atomically(path, lambda tmp: tmp.write_bytes(optimized), OptimizeError)

    LOGGER.debug("PNG 优化 %s，节省 %d 字节", path, saved)
    return saved


def should_optimize(destination: Path, optimize: bool) -> bool:
    return optimize and destination.suffix.lower() == ".png"


def transcode_file(source: Path, destination: Path, optimize: bool) -> bool:
    """完整的像素往返流程，返回是否执行了 PNG 重压缩。

    重压缩失败时目标位置已是有效的未优化文件，不做回滚。
    """

    image = decode_image(source)
    try:
        encode_image(image, destination)
    finally:
        image.close()

    if not should_optimize(destination, optimize):
        return False

    optimize_png_file(destination)
    return True
