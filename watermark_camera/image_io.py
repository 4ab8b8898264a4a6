# watermark_camera/image_io.py
import io
import os
import struct

import piexif
from loguru import logger
from PIL import ExifTags, Image, UnidentifiedImageError

from watermark_camera.errors import DecodeError
from watermark_camera.orientation import ExifOrientation

SUPPORTED_EXTS = {'.jpg', '.jpeg', '.png', '.bmp', '.tif', '.tiff'}


def is_image_file(path):
    _, ext = os.path.splitext(path.lower())
    return ext in SUPPORTED_EXTS


def decode_capture(data):
    """把原始拍摄字节解码为像素已载入的图像，失败抛出 DecodeError"""
    if not data:
        raise DecodeError("empty capture data")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise DecodeError("cannot decode capture data", detail=str(e))
    return img


def read_exif_orientation(image):
    """读取图像的 EXIF 方向，缺失时返回 NORMAL"""
    try:
        value = image.getexif().get(ExifTags.Base.Orientation)
    except (OSError, ValueError, SyntaxError) as e:
        logger.warning("读取 EXIF 失败: {}", e)
        return ExifOrientation.NORMAL
    return ExifOrientation.coerce(value)


def exif_bytes_with_orientation(image, orientation=ExifOrientation.NORMAL):
    """
    保留原图的 EXIF 信息，只把 Orientation 改为指定值。
    原图没有 EXIF 或 EXIF 无法重新编码时，只写入方向字段。
    """
    raw = image.info.get("exif")
    if raw:
        try:
            exif_dict = piexif.load(raw)
            exif_dict["0th"][piexif.ImageIFD.Orientation] = int(orientation)
            # 缩略图仍是旧方向，直接丢弃
            exif_dict["1st"] = {}
            exif_dict["thumbnail"] = None
            return piexif.dump(exif_dict)
        except (ValueError, KeyError, TypeError, struct.error, piexif.InvalidImageDataError) as e:
            logger.warning("EXIF 重新编码失败: {}，只保留方向字段", e)
    return piexif.dump({"0th": {piexif.ImageIFD.Orientation: int(orientation)}})


def encode_jpeg(image, quality=90, exif=None):
    """编码为 JPEG 字节；RGBA 等模式先转为 RGB"""
    rgb = image if image.mode in ("RGB", "L") else image.convert("RGB")
    buf = io.BytesIO()
    params = {"quality": quality, "optimize": True}
    if exif:
        params["exif"] = exif
    rgb.save(buf, "JPEG", **params)
    if rgb is not image:
        rgb.close()
    return buf.getvalue()


def generate_thumbnail(image, max_size=1024):
    """生成预览用缩略图（副本）"""
    thumb = image.copy()
    thumb.thumbnail((max_size, max_size), Image.LANCZOS)
    return thumb
