# watermark_camera/settings.py
import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path

from loguru import logger

from watermark_camera.content import LOCATION_PLACEHOLDER
from watermark_camera.models import DEFAULT_TIME_FORMAT

APP_DIR = Path.home() / '.watermark_camera'
SETTINGS_FILE = APP_DIR / 'settings.json'


@dataclass
class CameraSettings:
    storage_root: str = str(APP_DIR / 'storage')
    jpeg_quality: int = 90
    font_path: str = None
    default_time_format: str = DEFAULT_TIME_FORMAT
    location_placeholder: str = LOCATION_PLACEHOLDER
    worker_count: int = 2
    hysteresis_degrees: float = 10.0
    sector_offset_degrees: float = 0.0
    log_dir: str = None


def load_settings(path=SETTINGS_FILE):
    """读取设置文件并覆盖默认值；文件不存在时返回默认设置"""
    path = Path(path)
    settings = CameraSettings()
    if not path.exists():
        return settings
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    known = {f.name for f in fields(CameraSettings)}
    for key, value in data.items():
        if key in known:
            setattr(settings, key, value)
        else:
            logger.warning("忽略未知的设置项: {}", key)
    return settings


def save_settings(settings, path=SETTINGS_FILE):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(asdict(settings), f, ensure_ascii=False, indent=2)
