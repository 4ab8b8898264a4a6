# watermark_camera/content.py
"""动态水印内容的解析：时间、位置、图片"""
import re
from datetime import datetime
from pathlib import Path

from loguru import logger
from PIL import Image, UnidentifiedImageError

from watermark_camera.errors import ContentResolutionError
from watermark_camera.models import WatermarkKind, DEFAULT_TIME_FORMAT

LOCATION_PLACEHOLDER = "Locating..."

_TOKEN_RE = re.compile(r"'[^']*'|([A-Za-z])\1*")


def _year(now, n):
    if n == 2:
        return f"{now.year % 100:02d}"
    return str(now.year).zfill(n)


def _month(now, n):
    if n >= 4:
        return now.strftime("%B")
    if n == 3:
        return now.strftime("%b")
    return str(now.month).zfill(n)


# 字母 -> (当前时间, 重复次数) -> 文字，规则同 SimpleDateFormat：数字按重复次数补零
_FIELDS = {
    "y": _year,
    "M": _month,
    "L": _month,
    "d": lambda now, n: str(now.day).zfill(n),
    "D": lambda now, n: str(now.timetuple().tm_yday).zfill(n),
    "E": lambda now, n: now.strftime("%A" if n >= 4 else "%a"),
    "u": lambda now, n: str(now.isoweekday()).zfill(n),
    "a": lambda now, n: now.strftime("%p"),
    "H": lambda now, n: str(now.hour).zfill(n),
    "k": lambda now, n: str(now.hour or 24).zfill(n),
    "K": lambda now, n: str(now.hour % 12).zfill(n),
    "h": lambda now, n: str(now.hour % 12 or 12).zfill(n),
    "m": lambda now, n: str(now.minute).zfill(n),
    "s": lambda now, n: str(now.second).zfill(n),
    "S": lambda now, n: str(now.microsecond // 1000).zfill(n),
    "z": lambda now, n: now.strftime("%Z"),
    "Z": lambda now, n: now.strftime("%z"),
}


def format_pattern(pattern, now):
    """
    按 yyyy-MM-dd HH:mm:ss 风格的模式格式化时间。
    含有 '%' 的模式视为 strftime 格式。
    未知字母抛出 ContentResolutionError。
    """
    if not pattern or not pattern.strip():
        raise ContentResolutionError("empty time format")
    if "%" in pattern:
        return now.strftime(pattern)

    out = []
    pos = 0
    for match in _TOKEN_RE.finditer(pattern):
        out.append(pattern[pos:match.start()])
        token = match.group(0)
        if token.startswith("'"):
            # 引号内的文字原样输出，'' 表示单引号
            out.append(token[1:-1] or "'")
        elif token[0] in _FIELDS:
            out.append(_FIELDS[token[0]](now, len(token)))
        else:
            raise ContentResolutionError("malformed time format", detail=pattern)
        pos = match.end()
    out.append(pattern[pos:])
    return "".join(out)


def format_timestamp(pattern, now=None, fallback=DEFAULT_TIME_FORMAT):
    """按模式格式化时间；模式非法时记录日志并退回默认格式"""
    now = now or datetime.now()
    try:
        return format_pattern(pattern, now)
    except (ContentResolutionError, ValueError) as e:
        logger.warning("时间格式错误: {!r} ({})，使用默认格式", pattern, e)
    try:
        return format_pattern(fallback, now)
    except (ContentResolutionError, ValueError):
        return format_pattern(DEFAULT_TIME_FORMAT, now)


def load_image_reference(reference):
    """默认的图片加载器：把引用当作文件路径打开，返回 RGBA 图像"""
    path = Path(reference)
    if not path.is_file():
        raise ContentResolutionError("image reference not found", detail=reference)
    try:
        with Image.open(path) as img:
            return img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise ContentResolutionError("image reference cannot be decoded", detail=str(e))


class ContentResolver:
    """
    把水印的 content 解析为实际要绘制的内容。

    clock: 返回当前时间的 callable，便于测试
    image_loader: callable(reference) -> PIL.Image 或 None
    """

    def __init__(self, clock=datetime.now, image_loader=load_image_reference,
                 location_placeholder=LOCATION_PLACEHOLDER, fallback_format=DEFAULT_TIME_FORMAT):
        self.clock = clock
        self.image_loader = image_loader
        self.location_placeholder = location_placeholder
        self.fallback_format = fallback_format

    def resolve_text(self, spec, location=None):
        """返回 TEXT / TIMESTAMP / LOCATION 水印要绘制的文字"""
        if spec.kind is WatermarkKind.TIMESTAMP:
            return format_timestamp(spec.content, self.clock(), self.fallback_format)
        if spec.kind is WatermarkKind.LOCATION:
            if spec.content.strip():
                return spec.content
            # 真实的地理编码在外部完成，这里只接收已经解析好的字符串
            if location:
                return location
            return self.location_placeholder
        return spec.content

    def resolve_image(self, spec):
        """返回图片水印的 RGBA 图像，无法解析时抛出 ContentResolutionError"""
        if self.image_loader is None:
            raise ContentResolutionError("no image loader configured", detail=spec.content)
        img = self.image_loader(spec.content)
        if img is None:
            raise ContentResolutionError("image reference cannot be resolved", detail=spec.content)
        return img if img.mode == "RGBA" else img.convert("RGBA")
