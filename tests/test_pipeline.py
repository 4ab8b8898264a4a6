"""
Test the capture persistence pipeline
"""
from datetime import datetime

import pytest
from PIL import Image, ImageChops

from watermark_camera.errors import StorageError
from watermark_camera.exporter import WatermarkRenderer
from watermark_camera.image_io import read_exif_orientation
from watermark_camera.models import CaptureResult, WatermarkSpec
from watermark_camera.orientation import DeviceOrientation, ExifOrientation
from watermark_camera.pipeline import CapturePersister, PersistenceState, PipelineStage
from watermark_camera.storage import ArtifactStore, ArtifactTarget
from watermark_camera.watermark_set import WatermarkSet

CAPTURED_AT = datetime(2024, 1, 2, 3, 4, 5)
TEXT = WatermarkSpec.text("Watermark Camera", color=(255, 255, 255, 255), opacity=255)


class FailingStore(ArtifactStore):
    """Store whose writes fail for the given targets"""

    def __init__(self, root, failing):
        super().__init__(root)
        self.failing = set(failing)

    def write(self, target, timestamp, data):
        if target in self.failing:
            raise StorageError(f"failed to write {target.label}", target=target, detail="disk full")
        return super().write(target, timestamp, data)


def persister_for(store):
    return CapturePersister(store, WatermarkRenderer())


def changed_box(a, b, threshold=40):
    diff = ImageChops.difference(a.convert("RGB"), b.convert("RGB")).convert("L")
    return diff.point(lambda v: 255 if v > threshold else 0).getbbox()


@pytest.fixture
def small_capture(make_jpeg):
    return CaptureResult(make_jpeg((400, 300), orientation=6), captured_at=CAPTURED_AT)


class TestCompleted:

    def test_portrait_capture_end_to_end(self, temp_dir, landscape_jpeg_bytes):
        capture = CaptureResult(landscape_jpeg_bytes, captured_at=CAPTURED_AT)
        outcome = persister_for(ArtifactStore(temp_dir)).persist(
            capture, [TEXT], DeviceOrientation.UPRIGHT)

        assert outcome.state is PersistenceState.COMPLETED
        assert outcome.timestamp == "20240102_030405"
        assert outcome.decision.angle == 90
        assert set(outcome.artifacts) == {
            ArtifactTarget.PRIVATE_ORIGINAL,
            ArtifactTarget.GALLERY_ORIGINAL,
            ArtifactTarget.GALLERY_WATERMARKED,
        }
        assert outcome.artifacts[ArtifactTarget.PRIVATE_ORIGINAL].read_bytes() == landscape_jpeg_bytes

        with Image.open(outcome.artifacts[ArtifactTarget.GALLERY_ORIGINAL]) as original, \
                Image.open(outcome.artifacts[ArtifactTarget.GALLERY_WATERMARKED]) as watermarked:
            assert original.size == (3000, 4000)
            assert watermarked.size == (3000, 4000)
            assert read_exif_orientation(original) is ExifOrientation.NORMAL
            assert read_exif_orientation(watermarked) is ExifOrientation.NORMAL

            # baseline-left at (150, 3800), font size 3000 * 0.04
            left, top, right, bottom = changed_box(original, watermarked)
            assert 130 <= left <= 180
            assert 3600 < top < 3800
            assert 3790 < bottom < 3900

    def test_landscape_device_keeps_landscape_frame(self, temp_dir, small_capture):
        outcome = persister_for(ArtifactStore(temp_dir)).persist(
            small_capture, [TEXT], DeviceOrientation.ROTATED_LEFT)
        assert outcome.state is PersistenceState.COMPLETED
        assert not outcome.decision.rotate
        with Image.open(outcome.artifacts[ArtifactTarget.GALLERY_ORIGINAL]) as img:
            assert img.size == (400, 300)

    def test_empty_set_watermarked_equals_original(self, temp_dir, small_capture):
        outcome = persister_for(ArtifactStore(temp_dir)).persist(
            small_capture, WatermarkSet(defaults=[]), DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.COMPLETED
        with Image.open(outcome.artifacts[ArtifactTarget.GALLERY_ORIGINAL]) as original, \
                Image.open(outcome.artifacts[ArtifactTarget.GALLERY_WATERMARKED]) as watermarked:
            assert changed_box(original, watermarked, threshold=0) is None

    def test_transitions_are_reported_in_order(self, temp_dir, small_capture):
        steps = []
        persister_for(ArtifactStore(temp_dir)).persist(
            small_capture, [TEXT], DeviceOrientation.UPRIGHT, on_transition=steps.append)
        assert [s.stage for s in steps] == [
            PipelineStage.RAW_RECEIVED,
            PipelineStage.PRIVATE_ORIGINAL,
            PipelineStage.GALLERY_ORIGINAL,
            PipelineStage.GALLERY_WATERMARKED,
            PipelineStage.FINISHED,
        ]
        assert all(s.ok for s in steps)

    def test_capture_tag_overrides_embedded_exif(self, temp_dir, make_jpeg):
        capture = CaptureResult(make_jpeg((400, 300)), exif_orientation=ExifOrientation.ROTATE_90,
                                captured_at=CAPTURED_AT)
        outcome = persister_for(ArtifactStore(temp_dir)).persist(
            capture, [], DeviceOrientation.UPRIGHT)
        with Image.open(outcome.artifacts[ArtifactTarget.GALLERY_ORIGINAL]) as img:
            assert img.size == (300, 400)

    def test_repeated_timestamp_does_not_overwrite(self, temp_dir, small_capture):
        persister = persister_for(ArtifactStore(temp_dir))
        first = persister.persist(small_capture, [], DeviceOrientation.UPRIGHT)
        second = persister.persist(small_capture, [], DeviceOrientation.UPRIGHT)
        assert first.artifacts[ArtifactTarget.GALLERY_ORIGINAL] != \
            second.artifacts[ArtifactTarget.GALLERY_ORIGINAL]


class TestDegraded:

    def test_watermarked_failure_keeps_original(self, temp_dir, small_capture):
        store = FailingStore(temp_dir, [ArtifactTarget.GALLERY_WATERMARKED])
        outcome = persister_for(store).persist(small_capture, [TEXT], DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.DEGRADED_COMPLETED
        assert outcome.has(ArtifactTarget.GALLERY_ORIGINAL)
        assert not outcome.has(ArtifactTarget.GALLERY_WATERMARKED)
        assert "disk full" in outcome.message

    def test_original_failure_keeps_watermarked(self, temp_dir, small_capture):
        store = FailingStore(temp_dir, [ArtifactTarget.GALLERY_ORIGINAL])
        outcome = persister_for(store).persist(small_capture, [TEXT], DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.DEGRADED_COMPLETED
        assert outcome.has(ArtifactTarget.GALLERY_WATERMARKED)

    def test_both_gallery_failures_use_fallback(self, temp_dir, small_capture):
        store = FailingStore(temp_dir, [ArtifactTarget.GALLERY_ORIGINAL,
                                        ArtifactTarget.GALLERY_WATERMARKED])
        outcome = persister_for(store).persist(small_capture, [TEXT], DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.DEGRADED_COMPLETED
        assert outcome.has(ArtifactTarget.PRIVATE_ORIGINAL)
        fallback = outcome.artifacts[ArtifactTarget.GALLERY_FALLBACK]
        assert fallback.name == "WatermarkCamera_20240102_030405.jpg"
        with Image.open(fallback) as img:
            # saved as captured, tag still describes the pixels
            assert img.size == (400, 300)
            assert read_exif_orientation(img) is ExifOrientation.ROTATE_90

    def test_private_failure_is_not_fatal(self, temp_dir, small_capture):
        store = FailingStore(temp_dir, [ArtifactTarget.PRIVATE_ORIGINAL])
        outcome = persister_for(store).persist(small_capture, [TEXT], DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.COMPLETED
        assert not outcome.has(ArtifactTarget.PRIVATE_ORIGINAL)


class TestFailed:

    def test_everything_fails(self, temp_dir, small_capture):
        store = FailingStore(temp_dir, [ArtifactTarget.GALLERY_ORIGINAL,
                                        ArtifactTarget.GALLERY_WATERMARKED,
                                        ArtifactTarget.GALLERY_FALLBACK])
        outcome = persister_for(store).persist(small_capture, [TEXT], DeviceOrientation.UPRIGHT)
        assert outcome.state is PersistenceState.FAILED
        assert not outcome.succeeded
        # the private copy survives
        assert outcome.artifacts[ArtifactTarget.PRIVATE_ORIGINAL].exists()

    def test_undecodable_capture(self, temp_dir):
        capture = CaptureResult(b"definitely not a jpeg", captured_at=CAPTURED_AT)
        steps = []
        outcome = persister_for(ArtifactStore(temp_dir)).persist(
            capture, [TEXT], DeviceOrientation.UPRIGHT, on_transition=steps.append)
        assert outcome.state is PersistenceState.FAILED
        assert outcome.artifacts[ArtifactTarget.PRIVATE_ORIGINAL].read_bytes() == b"definitely not a jpeg"
        assert steps[-2].stage is PipelineStage.FALLBACK
        assert not steps[-2].ok
        assert steps[-1].stage is PipelineStage.FINISHED
