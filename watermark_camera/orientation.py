# watermark_camera/orientation.py
"""
方向修正

把设备的物理方向（重力传感器）和照片的 EXIF 方向标签合成一个旋转决定，
并在内存中完成像素级旋转。部分设备在物理方向已经和传感器画幅一致时
仍会写入旋转标签，只看 EXIF 会转错，所以用物理方向做裁决。
"""
import math
import threading
from dataclasses import dataclass
from enum import Enum, IntEnum

from loguru import logger
from PIL import Image


class DeviceOrientation(Enum):
    UPRIGHT = 0          # 竖屏
    ROTATED_LEFT = 1     # 横屏（左转）
    UPSIDE_DOWN = 2      # 倒立竖屏
    ROTATED_RIGHT = 3    # 横屏（右转）

    @property
    def is_portrait(self):
        return self in (DeviceOrientation.UPRIGHT, DeviceOrientation.UPSIDE_DOWN)

    @property
    def is_landscape(self):
        return not self.is_portrait

    @property
    def center_angle(self):
        """该扇区中心对应的重力角（度）"""
        return (0.0, 90.0, 180.0, -90.0)[self.value]


class ExifOrientation(IntEnum):
    UNDEFINED = 0
    NORMAL = 1
    MIRROR_HORIZONTAL = 2
    ROTATE_180 = 3
    MIRROR_VERTICAL = 4
    TRANSPOSE = 5
    ROTATE_90 = 6
    TRANSVERSE = 7
    ROTATE_270 = 8

    @classmethod
    def coerce(cls, value):
        """None 或未知数值一律视为 NORMAL"""
        if value is None:
            return cls.NORMAL
        try:
            tag = cls(int(value))
        except (TypeError, ValueError):
            logger.warning("未知的 EXIF 方向值: {!r}，按 NORMAL 处理", value)
            return cls.NORMAL
        return cls.NORMAL if tag is cls.UNDEFINED else tag

    @property
    def is_normal(self):
        return self in (ExifOrientation.NORMAL, ExifOrientation.UNDEFINED)

    @property
    def transform(self):
        """(顺时针角度, 是否先水平镜像)"""
        return _EXIF_TRANSFORMS[self]


# 镜像类标签拆成 “先水平翻转，再顺时针旋转”
_EXIF_TRANSFORMS = {
    ExifOrientation.UNDEFINED: (0, False),
    ExifOrientation.NORMAL: (0, False),
    ExifOrientation.MIRROR_HORIZONTAL: (0, True),
    ExifOrientation.ROTATE_180: (180, False),
    ExifOrientation.MIRROR_VERTICAL: (180, True),
    ExifOrientation.TRANSPOSE: (270, True),
    ExifOrientation.ROTATE_90: (90, False),
    ExifOrientation.TRANSVERSE: (90, True),
    ExifOrientation.ROTATE_270: (270, False),
}

# 顺时针角度 -> Pillow 的逆时针 transpose
_CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


@dataclass(frozen=True)
class RotationDecision:
    rotate: bool
    angle: int = 0
    mirror: bool = False
    reason: str = ""

    @property
    def is_identity(self):
        return not self.rotate or (self.angle % 360 == 0 and not self.mirror)


def should_rotate(image, exif_tag, device):
    """
    决定拍摄图像是否需要旋转。

    image: PIL 图像或 (width, height)
    exif_tag: ExifOrientation 或 EXIF 数值
    device: 拍摄时的 DeviceOrientation
    """
    width, height = image.size if hasattr(image, "size") else image
    is_landscape_image = width > height
    tag = ExifOrientation.coerce(exif_tag)
    angle, mirror = tag.transform

    if device.is_portrait and is_landscape_image and not tag.is_normal:
        decision = RotationDecision(True, angle, mirror, "竖持设备拍到横向画幅，按 EXIF 旋转")
    elif device.is_landscape and is_landscape_image:
        decision = RotationDecision(False, 0, False, "横持设备与横向画幅一致，无需旋转")
    elif not tag.is_normal:
        decision = RotationDecision(True, angle, mirror, "按 EXIF 方向旋转")
    else:
        decision = RotationDecision(False, 0, False, "EXIF 方向正常")

    logger.debug("旋转决策: 设备={} 画幅={}x{} EXIF={} -> {} {}° ({})",
                 device.name, width, height, tag.name,
                 "旋转" if decision.rotate else "不旋转", decision.angle, decision.reason)
    return decision


def apply_rotation(image, angle, mirror=False):
    """
    返回顺时针旋转 angle 度（0/90/180/270）后的新图像；mirror 为真时先水平翻转。
    0 度同样返回新的副本。
    """
    angle = int(angle) % 360
    if angle not in (0, 90, 180, 270):
        raise ValueError(f"rotation must be a multiple of 90 degrees, got {angle}")

    if mirror:
        result = image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)
        if angle:
            rotated = result.transpose(_CLOCKWISE_TRANSPOSE[angle])
            result.close()
            result = rotated
        return result
    if angle == 0:
        return image.copy()
    return image.transpose(_CLOCKWISE_TRANSPOSE[angle])


def correct_orientation(image, exif_tag, device):
    """决策 + 旋转，返回 (新图像, RotationDecision)"""
    decision = should_rotate(image, exif_tag, device)
    if decision.is_identity:
        return image.copy(), decision
    corrected = apply_rotation(image, decision.angle, decision.mirror)
    logger.debug("应用{}度旋转: {}x{} -> {}x{}", decision.angle,
                 image.width, image.height, corrected.width, corrected.height)
    return corrected, decision


def _normalize_angle(angle):
    """归一化到 [-180, 180)"""
    return (angle + 180.0) % 360.0 - 180.0


class OrientationTracker:
    """
    根据重力向量持续跟踪设备物理方向。

    角度 = atan2(gx, gy)，以 0°/90°/180°/-90° 为中心划分四个扇区。
    只有角度离开当前扇区中心超过 45° + hysteresis_degrees 时才切换，
    避免在边界附近来回跳动。sector_offset_degrees 整体平移扇区边界，
    用于适配不同硬件。
    """

    def __init__(self, hysteresis_degrees=10.0, sector_offset_degrees=0.0,
                 on_change=None, initial=DeviceOrientation.UPRIGHT):
        if not 0.0 <= hysteresis_degrees < 45.0:
            raise ValueError("hysteresis_degrees must be in [0, 45)")
        self.hysteresis_degrees = hysteresis_degrees
        self.sector_offset_degrees = sector_offset_degrees
        self.on_change = on_change
        self._current = initial
        self._angle = None
        self._lock = threading.Lock()

    def classify(self, angle):
        """不考虑滞回，直接把角度映射到扇区"""
        a = _normalize_angle(angle - self.sector_offset_degrees)
        if -45.0 <= a < 45.0:
            return DeviceOrientation.UPRIGHT
        if 45.0 <= a < 135.0:
            return DeviceOrientation.ROTATED_LEFT
        if -135.0 <= a < -45.0:
            return DeviceOrientation.ROTATED_RIGHT
        return DeviceOrientation.UPSIDE_DOWN

    def _distance_from_center(self, angle, orientation):
        center = orientation.center_angle + self.sector_offset_degrees
        return abs(_normalize_angle(angle - center))

    def update(self, gx, gy, gz=0.0):
        """输入一次重力传感器读数，返回当前方向"""
        angle = math.degrees(math.atan2(gx, gy))
        return self.update_angle(angle)

    def update_angle(self, angle):
        changed = None
        with self._lock:
            self._angle = angle
            candidate = self.classify(angle)
            if candidate is not self._current and \
                    self._distance_from_center(angle, self._current) > 45.0 + self.hysteresis_degrees:
                changed = (candidate, self._current)
                self._current = candidate
            current = self._current

        if changed:
            logger.debug("设备方向变化: {} -> {} (角度: {}°)",
                         changed[1].name, changed[0].name, int(angle))
            if self.on_change:
                self.on_change(changed[0], changed[1], angle)
        return current

    def current(self):
        with self._lock:
            return self._current

    @property
    def angle(self):
        return self._angle

    def is_portrait(self):
        return self.current().is_portrait

    def is_landscape(self):
        return self.current().is_landscape
