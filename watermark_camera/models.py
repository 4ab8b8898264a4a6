# watermark_camera/models.py
"""
水印数据模型

WatermarkSpec 是不可变的值对象：位置使用比例坐标 (0..1，左上角为原点)，
大小使用图片宽度的比例，与分辨率无关。修改一律通过 replace 生成新对象。
"""
import math
from dataclasses import dataclass, replace, asdict
from enum import Enum

from PIL import ImageColor

from watermark_camera.errors import ValidationError

WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)

MAX_SCALE = 0.5
DEFAULT_TEXT = "Watermark Camera"
DEFAULT_TIME_FORMAT = "yyyy-MM-dd HH:mm:ss"


class WatermarkKind(Enum):
    TEXT = "Text"
    TIMESTAMP = "Timestamp"
    LOCATION = "Location"
    IMAGE = "Image"

    @property
    def display_name(self):
        return self.value

    @classmethod
    def from_display_name(cls, display_name):
        """根据显示名称查找类型，找不到返回 None"""
        for kind in cls:
            if kind.display_name == display_name:
                return kind
        return None

    @classmethod
    def display_names(cls):
        return [kind.display_name for kind in cls]


def parse_color(value):
    """把 [r,g,b,a] / (r,g,b) / '#RRGGBB' 之类的值转换为 RGBA 元组"""
    if isinstance(value, str):
        return ImageColor.getcolor(value, "RGBA")
    channels = tuple(int(c) for c in value)
    if len(channels) == 3:
        channels = channels + (255,)
    return channels


def _finite(value):
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def _color_ok(color):
    return (
        isinstance(color, tuple)
        and len(color) == 4
        and all(isinstance(c, int) and 0 <= c <= 255 for c in color)
    )


@dataclass(frozen=True)
class WatermarkSpec:
    """单个水印的全部参数"""

    kind: WatermarkKind
    content: str = ""
    position: tuple = (0.1, 0.9)   # 默认左下角
    scale: float = 0.05            # 图片宽度的 5%
    opacity: int = 200             # 0..255
    rotation: float = 0.0          # 水印自身的顺时针旋转角度
    color: tuple = WHITE
    shadow_color: tuple = BLACK
    has_shadow: bool = True
    enabled: bool = True

    # ---- 工厂方法 ----

    @classmethod
    def text(cls, text=DEFAULT_TEXT, **kwargs):
        kwargs.setdefault("position", (0.05, 0.95))
        kwargs.setdefault("scale", 0.04)
        return cls(WatermarkKind.TEXT, text, **kwargs)

    @classmethod
    def timestamp(cls, time_format=DEFAULT_TIME_FORMAT, **kwargs):
        kwargs.setdefault("position", (0.05, 0.05))
        kwargs.setdefault("scale", 0.03)
        return cls(WatermarkKind.TIMESTAMP, time_format, **kwargs)

    @classmethod
    def location(cls, location="", **kwargs):
        # 位置文字在渲染时由调用方提供
        kwargs.setdefault("position", (0.95, 0.95))
        kwargs.setdefault("scale", 0.03)
        return cls(WatermarkKind.LOCATION, location, **kwargs)

    @classmethod
    def image(cls, reference, **kwargs):
        kwargs.setdefault("position", (0.95, 0.05))
        kwargs.setdefault("scale", 0.1)
        kwargs.setdefault("opacity", 180)
        kwargs.setdefault("has_shadow", False)
        return cls(WatermarkKind.IMAGE, reference, **kwargs)

    # ---- 校验 ----

    def validate(self, resolver=None):
        """
        检查全部约束，不满足时抛出 ValidationError。

        resolver: 可选的 callable(content) -> bool，用于确认图片水印的引用可以解析
        """
        if not isinstance(self.kind, WatermarkKind):
            raise ValidationError("unknown watermark kind", detail=self.kind)

        try:
            x, y = self.position
        except (TypeError, ValueError):
            raise ValidationError("position must be an (x, y) pair", detail=self.position)
        for axis, value in (("x", x), ("y", y)):
            if not _finite(value) or not 0.0 <= value <= 1.0:
                raise ValidationError(f"position.{axis} out of [0, 1]", detail=value)

        if not _finite(self.scale) or not 0.0 < self.scale <= MAX_SCALE:
            raise ValidationError("scale out of (0, 0.5]", detail=self.scale)

        if isinstance(self.opacity, bool) or not isinstance(self.opacity, int) \
                or not 0 <= self.opacity <= 255:
            raise ValidationError("opacity out of [0, 255]", detail=self.opacity)

        if not _finite(self.rotation):
            raise ValidationError("rotation must be finite", detail=self.rotation)

        for name in ("color", "shadow_color"):
            if not _color_ok(getattr(self, name)):
                raise ValidationError(f"{name} must be an RGBA tuple", detail=getattr(self, name))

        if not isinstance(self.content, str):
            raise ValidationError("content must be a string", detail=self.content)
        blank = not self.content.strip()
        if self.kind in (WatermarkKind.TEXT, WatermarkKind.TIMESTAMP) and blank:
            raise ValidationError(f"{self.kind.display_name} watermark needs content")
        if self.kind is WatermarkKind.IMAGE:
            if blank:
                raise ValidationError("image watermark needs a reference")
            if resolver is not None and not resolver(self.content):
                raise ValidationError("image reference cannot be resolved", detail=self.content)

    def is_valid(self, resolver=None):
        try:
            self.validate(resolver)
        except ValidationError:
            return False
        return True

    # ---- 复制辅助 ----

    def with_position(self, x, y):
        return replace(self, position=(x, y))

    def with_scale(self, scale):
        return replace(self, scale=scale)

    def with_opacity(self, opacity):
        return replace(self, opacity=opacity)

    def with_enabled(self, enabled):
        return replace(self, enabled=bool(enabled))

    def clamped(self):
        """返回把位置、大小、透明度夹到合法范围内的副本（交互编辑器使用）"""
        x, y = self.position
        x = min(max(float(x), 0.0), 1.0)
        y = min(max(float(y), 0.0), 1.0)
        scale = min(max(float(self.scale), 0.001), MAX_SCALE)
        opacity = min(max(int(self.opacity), 0), 255)
        return replace(self, position=(x, y), scale=scale, opacity=opacity)

    # ---- 序列化 ----

    def to_dict(self):
        data = asdict(self)
        data["kind"] = self.kind.name
        data["position"] = list(self.position)
        data["color"] = list(self.color)
        data["shadow_color"] = list(self.shadow_color)
        return data

    @classmethod
    def from_dict(cls, raw):
        """从 to_dict() 的结果恢复；缺失字段使用默认值，不做校验"""
        try:
            kind = WatermarkKind[raw["kind"]]
        except KeyError:
            raise ValidationError("unknown watermark kind", detail=raw.get("kind"))
        kwargs = {}
        if "content" in raw:
            kwargs["content"] = str(raw["content"])
        if "position" in raw:
            kwargs["position"] = tuple(float(v) for v in raw["position"])
        if "scale" in raw:
            kwargs["scale"] = float(raw["scale"])
        if "opacity" in raw:
            kwargs["opacity"] = int(raw["opacity"])
        if "rotation" in raw:
            kwargs["rotation"] = float(raw["rotation"])
        for name in ("color", "shadow_color"):
            if name in raw:
                kwargs[name] = parse_color(raw[name])
        for name in ("has_shadow", "enabled"):
            if name in raw:
                kwargs[name] = bool(raw[name])
        return cls(kind, **kwargs)


@dataclass(frozen=True)
class CaptureResult:
    """相机一次拍摄交付的数据：原始字节 + 拍摄时的 EXIF 方向标签"""

    data: bytes
    exif_orientation: object = None   # ExifOrientation；None 表示从字节中读取
    captured_at: object = None        # datetime；None 表示使用当前时间
