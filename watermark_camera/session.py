# watermark_camera/session.py
"""
拍摄会话

由宿主应用显式创建并持有，集中管理一次相机会话内的水印集合、
方向跟踪、渲染器和后台保存线程。会话结束时调用 close()。
"""
from loguru import logger

from watermark_camera.batch_worker import CaptureSaveWorker, safe_persist
from watermark_camera.content import ContentResolver
from watermark_camera.exporter import WatermarkRenderer
from watermark_camera.orientation import OrientationTracker
from watermark_camera.pipeline import CapturePersister
from watermark_camera.settings import CameraSettings
from watermark_camera.storage import ArtifactStore
from watermark_camera.watermark_set import WatermarkSet


class CaptureSession:
    def __init__(self, settings=None, watermarks=None, renderer=None, store=None,
                 tracker=None, progress_callback=None):
        self.settings = settings or CameraSettings()
        self.watermarks = watermarks if watermarks is not None else WatermarkSet()
        self.tracker = tracker or OrientationTracker(
            hysteresis_degrees=self.settings.hysteresis_degrees,
            sector_offset_degrees=self.settings.sector_offset_degrees,
        )
        self.renderer = renderer or WatermarkRenderer(
            font_path=self.settings.font_path,
            resolver=ContentResolver(
                location_placeholder=self.settings.location_placeholder,
                fallback_format=self.settings.default_time_format,
            ),
        )
        self.store = store or ArtifactStore(self.settings.storage_root)
        self.persister = CapturePersister(self.store, self.renderer, self.settings.jpeg_quality)
        self.worker = CaptureSaveWorker(self.persister, self.settings.worker_count, progress_callback)
        self.location = None
        self._closed = False
        logger.info("拍摄会话已创建，保存目录: {}", self.store.root)

    # ---- 方向与位置 ----

    def current_device_orientation(self):
        return self.tracker.current()

    def update_gravity(self, gx, gy, gz=0.0):
        return self.tracker.update(gx, gy, gz)

    def set_location(self, location):
        """外部解析好的位置文字，供位置水印使用"""
        self.location = location or None

    # ---- 水印 ----

    def apply_watermarks(self, image):
        """单次合成（例如实时预览），返回新图像"""
        return self.renderer.composite(image, self.watermarks, self.location)

    def has_enabled_watermarks(self):
        return self.watermarks.has_enabled_watermarks()

    def enabled_count(self):
        return self.watermarks.enabled_count()

    # ---- 保存 ----

    def composite_and_persist(self, capture, device=None, on_transition=None):
        """同步执行完整保存流程"""
        device = device or self.current_device_orientation()
        return safe_persist(self.persister, capture, self.watermarks, device, self.location, on_transition)

    def on_capture(self, capture, device=None, on_transition=None):
        """
        相机回调入口：读取此刻的设备方向和水印快照后交给后台线程，
        立即返回 Future[PersistenceOutcome]。
        """
        if self._closed:
            raise RuntimeError("capture session is closed")
        device = device or self.current_device_orientation()
        return self.worker.submit(capture, self.watermarks, device, self.location, on_transition)

    def close(self, wait=True):
        if self._closed:
            return
        self._closed = True
        self.worker.shutdown(wait=wait)
        self.watermarks.release()
        logger.info("拍摄会话已结束")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
