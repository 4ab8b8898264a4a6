# demo_capture.py
import argparse
from pathlib import Path

from watermark_camera.log import init_logging
from watermark_camera.models import CaptureResult
from watermark_camera.orientation import DeviceOrientation, ExifOrientation
from watermark_camera.session import CaptureSession
from watermark_camera.settings import load_settings


def demo():
    parser = argparse.ArgumentParser(description="把一张照片当作一次拍摄，执行水印合成和三重保存")
    parser.add_argument("src", help="JPEG 照片路径")
    parser.add_argument("--device", default="UPRIGHT",
                        choices=[o.name for o in DeviceOrientation], help="拍摄时的设备方向")
    parser.add_argument("--exif", type=int, default=None,
                        help="EXIF 方向值 (1-8)，不指定时从照片读取")
    parser.add_argument("--out", default=None, help="保存根目录，默认使用设置文件中的目录")
    parser.add_argument("--location", default=None, help="位置水印使用的文字")
    args = parser.parse_args()

    settings = load_settings()
    if args.out:
        settings.storage_root = args.out
    init_logging(settings.log_dir)

    capture = CaptureResult(
        Path(args.src).read_bytes(),
        exif_orientation=ExifOrientation.coerce(args.exif) if args.exif is not None else None,
    )

    with CaptureSession(settings) as session:
        session.set_location(args.location)
        outcome = session.composite_and_persist(
            capture,
            DeviceOrientation[args.device],
            on_transition=lambda step: print(" ", step.stage.value, "OK" if step.ok else step.error),
        )

    print("State:", outcome.state.value)
    print("Message:", outcome.message)
    for label, path in outcome.artifact_paths.items():
        print("Saved:", label, path)


if __name__ == "__main__":
    demo()
