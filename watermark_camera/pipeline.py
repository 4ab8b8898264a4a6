# watermark_camera/pipeline.py
"""
拍摄结果的保存流程（私有原图 + 相册原图 + 相册水印图）

每一步返回 StageResult 而不是抛异常，最终汇总为 PersistenceOutcome：
    两张相册图都成功      -> COMPLETED
    只有一张成功          -> DEGRADED_COMPLETED
    都失败                -> 兜底保存未修正的原图，成功为 DEGRADED_COMPLETED，否则 FAILED
私有原图只是方便再次编辑，失败只记日志，不影响结果状态。
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from loguru import logger

from watermark_camera.errors import DecodeError, StorageError
from watermark_camera.image_io import (
    decode_capture,
    encode_jpeg,
    exif_bytes_with_orientation,
    read_exif_orientation,
)
from watermark_camera.orientation import ExifOrientation, correct_orientation
from watermark_camera.storage import ArtifactTarget, capture_timestamp


class PersistenceState(Enum):
    COMPLETED = "completed"
    DEGRADED_COMPLETED = "degraded_completed"
    FAILED = "failed"


class PipelineStage(Enum):
    RAW_RECEIVED = "raw_received"
    PRIVATE_ORIGINAL = "private_original"
    GALLERY_ORIGINAL = "gallery_original"
    GALLERY_WATERMARKED = "gallery_watermarked"
    FALLBACK = "fallback"
    FINISHED = "finished"


_STAGE_TARGETS = {
    PipelineStage.PRIVATE_ORIGINAL: ArtifactTarget.PRIVATE_ORIGINAL,
    PipelineStage.GALLERY_ORIGINAL: ArtifactTarget.GALLERY_ORIGINAL,
    PipelineStage.GALLERY_WATERMARKED: ArtifactTarget.GALLERY_WATERMARKED,
    PipelineStage.FALLBACK: ArtifactTarget.GALLERY_FALLBACK,
}


@dataclass(frozen=True)
class StageResult:
    stage: PipelineStage
    ok: bool
    path: object = None      # pathlib.Path
    error: str = None
    note: str = ""


@dataclass
class PersistenceOutcome:
    state: PersistenceState
    message: str
    timestamp: str
    artifacts: dict = field(default_factory=dict)   # ArtifactTarget -> Path
    steps: list = field(default_factory=list)       # [StageResult]
    decision: object = None                          # RotationDecision

    @property
    def artifact_paths(self):
        return {target.label: path for target, path in self.artifacts.items()}

    @property
    def succeeded(self):
        return self.state is not PersistenceState.FAILED

    def has(self, target):
        return target in self.artifacts


class CapturePersister:
    """
    保存流程编排

    store: ArtifactStore
    renderer: WatermarkRenderer
    """

    def __init__(self, store, renderer, jpeg_quality=90, clock=datetime.now):
        self.store = store
        self.renderer = renderer
        self.jpeg_quality = jpeg_quality
        self.clock = clock

    def persist(self, capture, watermarks, device, location=None, on_transition=None):
        """
        执行一次拍摄的完整保存流程，返回 PersistenceOutcome。

        watermarks: WatermarkSet 或 WatermarkSpec 序列；这里只取一次快照
        device: 拍摄时的 DeviceOrientation
        on_transition: callable(StageResult)，每一步完成后调用
        """
        specs = watermarks.active() if hasattr(watermarks, "active") else tuple(watermarks)
        timestamp = capture_timestamp(capture.captured_at or self.clock())
        outcome = PersistenceOutcome(PersistenceState.FAILED, "", timestamp)

        def report(result):
            outcome.steps.append(result)
            target = _STAGE_TARGETS.get(result.stage)
            if result.ok and target is not None:
                outcome.artifacts[target] = result.path
            if result.ok:
                logger.info("[{}] {} {}", timestamp, result.stage.value, result.path or result.note)
            else:
                logger.warning("[{}] {} 失败: {}", timestamp, result.stage.value, result.error)
            if on_transition:
                on_transition(result)

        report(StageResult(PipelineStage.RAW_RECEIVED, True, note=f"{len(capture.data)} bytes"))

        # 1. 私有原图：原始字节直接复制
        report(self._write(PipelineStage.PRIVATE_ORIGINAL, timestamp, capture.data))

        # 2/3. 解码 -> 方向修正 -> 相册原图 -> 合成水印 -> 相册水印图
        original, watermarked = self._save_gallery_pair(capture, specs, device, location,
                                                        timestamp, outcome, report)

        # 4. 汇总
        if original.ok and watermarked.ok:
            outcome.state = PersistenceState.COMPLETED
            outcome.message = "原图和水印图已保存到相册"
        elif original.ok:
            outcome.state = PersistenceState.DEGRADED_COMPLETED
            outcome.message = f"水印图保存失败，仅保存了原图: {watermarked.error}"
        elif watermarked.ok:
            outcome.state = PersistenceState.DEGRADED_COMPLETED
            outcome.message = f"原图保存失败，仅保存了水印图: {original.error}"
        else:
            fallback = self._fallback(capture, timestamp)
            report(fallback)
            if fallback.ok:
                outcome.state = PersistenceState.DEGRADED_COMPLETED
                outcome.message = "处理失败，已保存未加水印、未修正方向的原图"
            else:
                outcome.state = PersistenceState.FAILED
                outcome.message = f"保存照片失败: {fallback.error}"

        report(StageResult(PipelineStage.FINISHED, outcome.succeeded, note=outcome.state.value,
                           error=None if outcome.succeeded else outcome.message))
        return outcome

    def _write(self, stage, timestamp, data):
        try:
            path = self.store.write(_STAGE_TARGETS[stage], timestamp, data)
        except StorageError as e:
            return StageResult(stage, False, error=f"{e}: {e.detail}")
        return StageResult(stage, True, path=path)

    def _encode(self, image, exif):
        try:
            return encode_jpeg(image, self.jpeg_quality, exif)
        except (OSError, ValueError) as e:
            raise StorageError("failed to encode jpeg", detail=str(e))

    def _save_encoded(self, stage, timestamp, image, exif):
        try:
            data = self._encode(image, exif)
        except StorageError as e:
            return StageResult(stage, False, error=f"{e}: {e.detail}")
        return self._write(stage, timestamp, data)

    def _save_gallery_pair(self, capture, specs, device, location, timestamp, outcome, report):
        try:
            raw = decode_capture(capture.data)
        except DecodeError as e:
            reason = f"{e}: {e.detail}"
            original = StageResult(PipelineStage.GALLERY_ORIGINAL, False, error=reason)
            watermarked = StageResult(PipelineStage.GALLERY_WATERMARKED, False, error=reason)
            report(original)
            report(watermarked)
            return original, watermarked

        try:
            if capture.exif_orientation is not None:
                tag = ExifOrientation.coerce(capture.exif_orientation)
            else:
                tag = read_exif_orientation(raw)
            # 像素已经修正，写出的 EXIF 方向统一为 NORMAL
            exif = exif_bytes_with_orientation(raw, ExifOrientation.NORMAL)
            corrected, decision = correct_orientation(raw, tag, device)
            outcome.decision = decision
        finally:
            raw.close()

        try:
            original = self._save_encoded(PipelineStage.GALLERY_ORIGINAL, timestamp, corrected, exif)
            report(original)
            watermarked_img = self.renderer.composite(corrected, specs, location)
        finally:
            corrected.close()

        try:
            watermarked = self._save_encoded(PipelineStage.GALLERY_WATERMARKED, timestamp,
                                             watermarked_img, exif)
        finally:
            watermarked_img.close()
        report(watermarked)
        return original, watermarked

    def _fallback(self, capture, timestamp):
        """兜底：原样保存未修正的原图，EXIF 保留拍摄时的方向标签"""
        stage = PipelineStage.FALLBACK
        try:
            raw = decode_capture(capture.data)
        except DecodeError as e:
            return StageResult(stage, False, error=f"{e}: {e.detail}")
        try:
            tag = (ExifOrientation.coerce(capture.exif_orientation)
                   if capture.exif_orientation is not None else read_exif_orientation(raw))
            exif = exif_bytes_with_orientation(raw, tag)
            result = self._save_encoded(stage, timestamp, raw, exif)
        finally:
            raw.close()
        if result.ok:
            return StageResult(stage, True, path=result.path, note="未应用水印和方向修正")
        return result
