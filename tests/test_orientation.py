"""
Test orientation reconciliation and tracking
"""
import pytest
from PIL import Image

from watermark_camera.orientation import (
    DeviceOrientation,
    ExifOrientation,
    OrientationTracker,
    apply_rotation,
    correct_orientation,
    should_rotate,
)

LANDSCAPE = (4000, 3000)
PORTRAIT = (3000, 4000)


def marked_image(size=(40, 30)):
    """Gray image with a red top-left pixel"""
    img = Image.new("RGB", size, (100, 100, 100))
    img.putpixel((0, 0), (255, 0, 0))
    return img


class TestExifOrientation:

    @pytest.mark.parametrize("value", [None, 0, 1, 9, "bogus"])
    def test_coerce_to_normal(self, value):
        assert ExifOrientation.coerce(value) is ExifOrientation.NORMAL

    def test_coerce_known(self):
        assert ExifOrientation.coerce(6) is ExifOrientation.ROTATE_90

    def test_transforms(self):
        assert ExifOrientation.ROTATE_90.transform == (90, False)
        assert ExifOrientation.ROTATE_270.transform == (270, False)
        assert ExifOrientation.MIRROR_HORIZONTAL.transform == (0, True)
        assert ExifOrientation.TRANSPOSE.transform == (270, True)


class TestShouldRotate:

    def test_portrait_device_landscape_frame_follows_exif(self):
        decision = should_rotate(LANDSCAPE, ExifOrientation.ROTATE_90, DeviceOrientation.UPRIGHT)
        assert decision.rotate
        assert decision.angle == 90

    def test_landscape_device_landscape_frame_is_kept(self):
        for device in (DeviceOrientation.ROTATED_LEFT, DeviceOrientation.ROTATED_RIGHT):
            decision = should_rotate(LANDSCAPE, ExifOrientation.ROTATE_90, device)
            assert not decision.rotate
            assert decision.is_identity

    def test_other_cases_follow_exif(self):
        decision = should_rotate(PORTRAIT, ExifOrientation.ROTATE_180, DeviceOrientation.ROTATED_LEFT)
        assert decision.rotate
        assert decision.angle == 180

    def test_normal_tag_never_rotates(self):
        for device in DeviceOrientation:
            assert not should_rotate(LANDSCAPE, ExifOrientation.NORMAL, device).rotate
            assert not should_rotate(PORTRAIT, None, device).rotate

    def test_accepts_image(self):
        decision = should_rotate(Image.new("RGB", LANDSCAPE[::-1]), 8, DeviceOrientation.UPSIDE_DOWN)
        assert decision.angle == 270

    def test_mirror_flag(self):
        decision = should_rotate(LANDSCAPE, ExifOrientation.TRANSVERSE, DeviceOrientation.UPRIGHT)
        assert decision.mirror


class TestApplyRotation:

    def test_clockwise_quarter_turn(self):
        rotated = apply_rotation(marked_image(), 90)
        assert rotated.size == (30, 40)
        assert rotated.getpixel((29, 0)) == (255, 0, 0)

    def test_half_turn(self):
        rotated = apply_rotation(marked_image(), 180)
        assert rotated.size == (40, 30)
        assert rotated.getpixel((39, 29)) == (255, 0, 0)

    def test_round_trip_is_lossless(self):
        img = marked_image()
        back = apply_rotation(apply_rotation(img, 90), 270)
        assert back.tobytes() == img.tobytes()

    def test_zero_returns_copy(self):
        img = marked_image()
        result = apply_rotation(img, 0)
        assert result is not img
        assert result.tobytes() == img.tobytes()

    def test_mirror(self):
        mirrored = apply_rotation(marked_image(), 0, mirror=True)
        assert mirrored.getpixel((39, 0)) == (255, 0, 0)

    def test_rejects_odd_angles(self):
        with pytest.raises(ValueError):
            apply_rotation(marked_image(), 45)

    def test_correct_orientation(self):
        img = marked_image((400, 300))
        corrected, decision = correct_orientation(img, ExifOrientation.ROTATE_90, DeviceOrientation.UPRIGHT)
        assert decision.rotate
        assert corrected.size == (300, 400)

        kept, decision = correct_orientation(img, ExifOrientation.ROTATE_90, DeviceOrientation.ROTATED_LEFT)
        assert not decision.rotate
        assert kept is not img
        assert kept.size == (400, 300)


class TestOrientationTracker:

    def test_gravity_vector(self):
        tracker = OrientationTracker()
        assert tracker.update(0.0, 9.8) is DeviceOrientation.UPRIGHT
        assert tracker.update(9.8, 0.0) is DeviceOrientation.ROTATED_LEFT
        assert tracker.angle == pytest.approx(90.0)
        assert tracker.is_landscape()

    def test_hysteresis(self):
        changes = []
        tracker = OrientationTracker(hysteresis_degrees=10,
                                     on_change=lambda new, old, angle: changes.append((new, old)))
        assert tracker.update_angle(50) is DeviceOrientation.UPRIGHT
        assert tracker.update_angle(60) is DeviceOrientation.ROTATED_LEFT
        assert tracker.update_angle(40) is DeviceOrientation.ROTATED_LEFT
        assert tracker.update_angle(30) is DeviceOrientation.UPRIGHT
        assert changes == [
            (DeviceOrientation.ROTATED_LEFT, DeviceOrientation.UPRIGHT),
            (DeviceOrientation.UPRIGHT, DeviceOrientation.ROTATED_LEFT),
        ]

    def test_no_hysteresis_switches_at_boundary(self):
        tracker = OrientationTracker(hysteresis_degrees=0)
        assert tracker.update_angle(-46) is DeviceOrientation.ROTATED_RIGHT
        assert tracker.current() is DeviceOrientation.ROTATED_RIGHT

    def test_upside_down(self):
        tracker = OrientationTracker()
        assert tracker.update_angle(180) is DeviceOrientation.UPSIDE_DOWN
        assert tracker.update_angle(-170) is DeviceOrientation.UPSIDE_DOWN
        assert tracker.is_portrait()

    def test_sector_offset(self):
        tracker = OrientationTracker(sector_offset_degrees=10)
        assert tracker.classify(50) is DeviceOrientation.UPRIGHT
        assert tracker.classify(60) is DeviceOrientation.ROTATED_LEFT

    @pytest.mark.parametrize("value", [-1, 45, 90])
    def test_invalid_hysteresis(self, value):
        with pytest.raises(ValueError):
            OrientationTracker(hysteresis_degrees=value)
