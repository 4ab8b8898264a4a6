# watermark_camera/watermark.py
"""
水印贴片（tile）的生成。

每个水印先画到一张刚好容纳它的透明 RGBA 小图上（含阴影），
再由 exporter 按锚点合成到目标图片。小图上的锚点坐标随贴片一起返回。
"""
import math

from loguru import logger
from PIL import Image, ImageDraw, ImageFont

SHADOW_OFFSET_RATIO = 0.02   # 阴影偏移 = 字号 * 0.02
MIN_FONT_SIZE = 1


def load_font(font_path, size):
    """
    载入字体。font_path 为 None 或载入失败时使用 Pillow 自带的默认字体。
    """
    size = max(int(round(size)), MIN_FONT_SIZE)
    if font_path:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError as e:
            logger.warning("字体载入失败 {}: {}，改用默认字体", font_path, e)
    return ImageFont.load_default(size=size)


def _scaled_alpha(color, opacity):
    """颜色自身的 alpha 再乘以水印透明度"""
    return (*color[:3], int(round(opacity * color[3] / 255)))


def measure_text(text, font):
    """返回以基线左端为原点的文字边界 (left, top, right, bottom)"""
    return font.getbbox(text, anchor="ls")


def create_text_tile(text, font, color, opacity, has_shadow=True, shadow_color=(0, 0, 0, 255)):
    """
    返回 (tile, anchor)：透明背景的 RGBA 贴片，以及贴片上文字基线左端的位置。

    阴影先画，偏移 字号*0.02，透明度为主文字的一半；主文字用完整透明度。
    """
    left, top, right, bottom = measure_text(text, font)
    offset = font.size * SHADOW_OFFSET_RATIO if has_shadow else 0
    pad = 2
    w = int(math.ceil(right - left + offset)) + pad * 2
    h = int(math.ceil(bottom - top + offset)) + pad * 2
    anchor = (pad - left, pad - top)

    tile = Image.new("RGBA", (max(w, 1), max(h, 1)), (0, 0, 0, 0))

    if has_shadow:
        shadow_layer = Image.new("RGBA", tile.size, (0, 0, 0, 0))
        sd = ImageDraw.Draw(shadow_layer)
        sd.text((anchor[0] + offset, anchor[1] + offset), text, font=font,
                fill=_scaled_alpha(shadow_color, opacity // 2), anchor="ls")
        tile = Image.alpha_composite(tile, shadow_layer)

    text_layer = Image.new("RGBA", tile.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(text_layer)
    draw.text(anchor, text, font=font, fill=_scaled_alpha(color, opacity), anchor="ls")
    tile = Image.alpha_composite(tile, text_layer)
    return tile, anchor


def _apply_opacity(img, opacity):
    alpha = img.getchannel("A").point(lambda a: a * opacity // 255)
    out = img.copy()
    out.putalpha(alpha)
    return out


def create_image_tile(logo, width, opacity, position, has_shadow=False,
                      shadow_color=(0, 0, 0, 255)):
    """
    返回 (tile, anchor)：缩放到 width 像素宽的图片水印。

    锚点取图片自身的同比例位置，(0,0) 对应左上角、(1,1) 对应右下角，
    这样任何比例坐标都能让图片留在画面内。
    """
    width = max(int(round(width)), 1)
    height = max(int(round(logo.height * width / logo.width)), 1)
    scaled = logo.resize((width, height), Image.LANCZOS)
    main = _apply_opacity(scaled, opacity)

    offset = int(round(width * SHADOW_OFFSET_RATIO)) if has_shadow else 0
    tile = Image.new("RGBA", (width + offset, height + offset), (0, 0, 0, 0))
    if has_shadow:
        shadow = Image.new("RGBA", scaled.size, tuple(shadow_color[:3]) + (0,))
        shadow.putalpha(scaled.getchannel("A").point(
            lambda a: a * (opacity // 2) * shadow_color[3] // (255 * 255)))
        tile.alpha_composite(shadow, (offset, offset))
    tile.alpha_composite(main, (0, 0))

    x, y = position
    return tile, (width * x, height * y)


def rotate_tile(tile, anchor, degrees):
    """
    绕锚点顺时针旋转贴片，返回 (新贴片, 新锚点)。
    """
    if not degrees % 360:
        return tile, anchor
    w, h = tile.size
    # Image.rotate 是逆时针
    rotated = tile.rotate(-degrees, resample=Image.BICUBIC, expand=True)
    dx = anchor[0] - w / 2
    dy = anchor[1] - h / 2
    theta = math.radians(degrees)
    nx = dx * math.cos(theta) - dy * math.sin(theta)
    ny = dx * math.sin(theta) + dy * math.cos(theta)
    return rotated, (rotated.width / 2 + nx, rotated.height / 2 + ny)
