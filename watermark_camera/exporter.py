# watermark_camera/exporter.py
"""
水印合成引擎

composite() 总是返回新的图像，不修改调用方传入的图像：
同一张原图还要用于保存相册原图。
"""
from loguru import logger

from watermark_camera.content import ContentResolver
from watermark_camera.errors import ContentResolutionError
from watermark_camera.models import WatermarkKind
from watermark_camera.watermark import (
    create_image_tile,
    create_text_tile,
    load_font,
    measure_text,
    rotate_tile,
)


def paste_tile(canvas, tile, anchor, point):
    """
    把贴片合成到 canvas（RGBA，原地修改），使贴片上的 anchor 落在 canvas 的 point。
    超出画面的部分被裁掉；完全在画面外时返回 False。
    """
    left = int(round(point[0] - anchor[0]))
    top = int(round(point[1] - anchor[1]))

    dst_left, dst_top = max(left, 0), max(top, 0)
    right = min(canvas.width, left + tile.width)
    bottom = min(canvas.height, top + tile.height)
    if right <= dst_left or bottom <= dst_top:
        return False

    src_left, src_top = dst_left - left, dst_top - top
    canvas.alpha_composite(
        tile,
        dest=(dst_left, dst_top),
        source=(src_left, src_top, src_left + right - dst_left, src_top + bottom - dst_top),
    )
    return True


class WatermarkRenderer:
    """
    把水印集合渲染到图片上

    font_path: TrueType 字体路径，None 使用 Pillow 默认字体
    resolver: ContentResolver，负责时间/位置/图片内容
    """

    def __init__(self, font_path=None, resolver=None):
        self.font_path = font_path
        self.resolver = resolver or ContentResolver()

    def composite(self, image, watermarks, location=None):
        """
        按顺序把启用且有效的水印画到 image 的副本上并返回。

        watermarks: WatermarkSet（取快照）或 WatermarkSpec 序列
        location: 已解析好的位置文字，供位置水印使用
        """
        specs = watermarks.active() if hasattr(watermarks, "active") else tuple(watermarks)
        drawable = [s for s in specs if s.enabled and self._drawable(s)]
        if not drawable:
            logger.debug("没有可绘制的水印，返回原图副本")
            return image.copy()

        logger.debug("开始渲染水印，数量: {}，图片尺寸: {}x{}",
                     len(drawable), image.width, image.height)
        canvas = image.convert("RGBA")

        for spec in drawable:
            try:
                self._render_one(canvas, spec, location)
            except Exception:
                # 单个水印失败不影响其它水印，也不丢弃已经画好的内容
                logger.exception("渲染{}水印失败", spec.kind.display_name)

        if image.mode == "RGB":
            result = canvas.convert("RGB")
            canvas.close()
            return result
        return canvas

    def preview(self, image, spec, location=None):
        """预览单个水印效果（不修改原图）"""
        return self.composite(image, [spec], location)

    def measure_text(self, text, pixel_size):
        """以基线左端为原点的文字边界"""
        return measure_text(text, load_font(self.font_path, pixel_size))

    @staticmethod
    def _drawable(spec):
        if spec.is_valid():
            return True
        logger.warning("跳过无效水印: {}", spec.kind.display_name)
        return False

    def _render_one(self, canvas, spec, location):
        width, height = canvas.size
        size = width * spec.scale
        point = (width * spec.position[0], height * spec.position[1])

        if spec.kind is WatermarkKind.IMAGE:
            try:
                logo = self.resolver.resolve_image(spec)
            except ContentResolutionError as e:
                logger.warning("图片水印无法解析 ({}: {})，改为绘制文字", e, e.detail)
                text = spec.kind.display_name
            else:
                tile, anchor = create_image_tile(
                    logo, size, spec.opacity, spec.position,
                    has_shadow=spec.has_shadow, shadow_color=spec.shadow_color,
                )
                tile, anchor = rotate_tile(tile, anchor, spec.rotation)
                paste_tile(canvas, tile, anchor, point)
                return
        else:
            text = self.resolver.resolve_text(spec, location)

        font = load_font(self.font_path, size)
        tile, anchor = create_text_tile(
            text, font, spec.color, spec.opacity,
            has_shadow=spec.has_shadow, shadow_color=spec.shadow_color,
        )
        tile, anchor = rotate_tile(tile, anchor, spec.rotation)
        paste_tile(canvas, tile, anchor, point)
