# watermark_camera/template_manager.py
import json
import os

from loguru import logger

from watermark_camera.errors import ValidationError
from watermark_camera.models import WatermarkSpec
from watermark_camera.settings import APP_DIR
from watermark_camera.watermark_set import default_watermarks

PRESET_FILE = APP_DIR / "presets.json"
DEFAULT_PRESET = "默认水印"


class PresetManager:
    """按名称保存/加载整套水印配置"""

    def __init__(self, path=PRESET_FILE):
        self.path = path
        self.presets = {}
        self.last_used = None
        self.load_presets()

    def load_presets(self):
        """加载预设文件，不存在时写入默认预设"""
        if os.path.exists(self.path):
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
                self.presets = data.get("presets", {})
                self.last_used = data.get("last_used")
        if DEFAULT_PRESET not in self.presets:
            self.presets[DEFAULT_PRESET] = [s.to_dict() for s in default_watermarks()]
            self.last_used = self.last_used or DEFAULT_PRESET
            self.save_presets()

    def save_presets(self):
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(
                {"presets": self.presets, "last_used": self.last_used},
                f, indent=4, ensure_ascii=False
            )

    def names(self):
        return list(self.presets.keys())

    def save_preset(self, name, specs):
        """把一组水印保存为预设（WatermarkSet 或 WatermarkSpec 序列）"""
        specs = specs.active() if hasattr(specs, "active") else specs
        self.presets[name] = [s.to_dict() for s in specs]
        self.last_used = name
        self.save_presets()
        logger.info("已保存水印预设: {} ({} 条)", name, len(self.presets[name]))

    def load_preset(self, name):
        """返回预设中的 WatermarkSpec 列表；不存在或内容损坏时返回 None"""
        if name not in self.presets:
            return None
        try:
            specs = [WatermarkSpec.from_dict(raw) for raw in self.presets[name]]
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("水印预设 {} 内容无效: {}", name, e)
            return None
        self.last_used = name
        self.save_presets()
        return specs

    def delete_preset(self, name):
        """删除预设；默认预设不能删除"""
        if name == DEFAULT_PRESET or name not in self.presets:
            return False
        del self.presets[name]
        # 如果删的是当前预设，回退到默认
        if self.last_used == name:
            self.last_used = DEFAULT_PRESET
        self.save_presets()
        return True
