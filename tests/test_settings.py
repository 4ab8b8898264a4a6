"""
Test settings and watermark presets
"""
import json
import os

from watermark_camera.models import WatermarkKind, WatermarkSpec
from watermark_camera.settings import CameraSettings, load_settings, save_settings
from watermark_camera.template_manager import DEFAULT_PRESET, PresetManager
from watermark_camera.watermark_set import WatermarkSet


class TestSettings:

    def test_missing_file_gives_defaults(self, temp_dir):
        settings = load_settings(os.path.join(temp_dir, "settings.json"))
        assert settings == CameraSettings()
        assert settings.jpeg_quality == 90
        assert settings.hysteresis_degrees == 10.0

    def test_round_trip(self, temp_dir):
        path = os.path.join(temp_dir, "nested", "settings.json")
        save_settings(CameraSettings(jpeg_quality=75, worker_count=4), path)
        settings = load_settings(path)
        assert settings.jpeg_quality == 75
        assert settings.worker_count == 4

    def test_unknown_keys_are_ignored(self, temp_dir):
        path = os.path.join(temp_dir, "settings.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"jpeg_quality": 80, "flash": "auto"}, f)
        settings = load_settings(path)
        assert settings.jpeg_quality == 80
        assert not hasattr(settings, "flash")


class TestPresetManager:

    def test_default_preset_is_created(self, temp_dir):
        path = os.path.join(temp_dir, "presets.json")
        manager = PresetManager(path)
        assert os.path.exists(path)
        assert manager.last_used == DEFAULT_PRESET
        specs = manager.load_preset(DEFAULT_PRESET)
        assert [s.kind for s in specs] == [WatermarkKind.TEXT, WatermarkKind.TIMESTAMP]

    def test_save_and_reload(self, temp_dir):
        path = os.path.join(temp_dir, "presets.json")
        watermarks = WatermarkSet()
        watermarks.add(WatermarkSpec.location("Harbour", color=(1, 2, 3, 4)))
        PresetManager(path).save_preset("trip", watermarks)

        manager = PresetManager(path)
        assert manager.last_used == "trip"
        assert manager.load_preset("trip") == list(watermarks.active())
        assert manager.load_preset("missing") is None

    def test_delete(self, temp_dir):
        manager = PresetManager(os.path.join(temp_dir, "presets.json"))
        manager.save_preset("trip", [WatermarkSpec.text("x")])
        assert not manager.delete_preset(DEFAULT_PRESET)
        assert manager.delete_preset("trip")
        assert manager.last_used == DEFAULT_PRESET
        assert manager.names() == [DEFAULT_PRESET]

    def test_corrupt_preset(self, temp_dir):
        path = os.path.join(temp_dir, "presets.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"presets": {"bad": [{"kind": "STICKER"}]}, "last_used": "bad"}, f)
        manager = PresetManager(path)
        assert manager.load_preset("bad") is None
        assert DEFAULT_PRESET in manager.names()
