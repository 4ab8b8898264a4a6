# watermark_camera/storage.py
"""
保存目标

每次拍摄对应的逻辑目标：
    private/original/{ts}.jpg                  可再次编辑的私有原图
    gallery/original/Original_{ts}.jpg         相册原图（方向已修正）
    gallery/watermarked/Watermark_{ts}.jpg     相册水印图
    gallery/WatermarkCamera_{ts}.jpg           兜底保存的未修正原图
"""
import os
import pathlib
import tempfile
from datetime import datetime
from enum import Enum

from loguru import logger

from watermark_camera.errors import StorageError

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"   # yyyyMMdd_HHmmss


class ArtifactTarget(Enum):
    PRIVATE_ORIGINAL = ("private/original", "{ts}.jpg")
    GALLERY_ORIGINAL = ("gallery/original", "Original_{ts}.jpg")
    GALLERY_WATERMARKED = ("gallery/watermarked", "Watermark_{ts}.jpg")
    GALLERY_FALLBACK = ("gallery", "WatermarkCamera_{ts}.jpg")

    def __init__(self, directory, name_template):
        self.directory = directory
        self.name_template = name_template

    @property
    def label(self):
        return self.name.lower()


def capture_timestamp(when=None):
    return (when or datetime.now()).strftime(TIMESTAMP_FORMAT)


def reserve_output_path(dst):
    """
    以独占方式创建空文件占住目标名，已存在时追加序号 _1, _2 ...
    多个保存线程同一秒写同名文件时不会互相覆盖。
    """
    dst = pathlib.Path(dst)
    candidate = dst
    i = 1
    while True:
        try:
            with open(candidate, "xb"):
                return candidate
        except FileExistsError:
            candidate = dst.with_name(f"{dst.stem}_{i}{dst.suffix}")
            i += 1


class ArtifactStore:
    """把字节写入各保存目标。写入先落到临时文件再替换，失败时不留下半个文件。"""

    def __init__(self, root):
        self.root = pathlib.Path(root)

    def path_for(self, target, timestamp):
        return self.root / target.directory / target.name_template.format(ts=timestamp)

    def write(self, target, timestamp, data):
        """写入并返回最终路径；任何 I/O 失败抛出 StorageError"""
        dst = None
        tmp_name = None
        try:
            parent = self.path_for(target, timestamp).parent
            parent.mkdir(parents=True, exist_ok=True)
            dst = reserve_output_path(self.path_for(target, timestamp))
            fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=".tmp_", suffix=dst.suffix)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, dst)
            tmp_name = None
        except OSError as e:
            # 占位的空文件也要删掉
            for leftover in (tmp_name, dst):
                if leftover is not None:
                    _discard(leftover)
            raise StorageError(f"failed to write {target.label}", target=target, detail=str(e))
        logger.debug("已写入 {}: {} ({} bytes)", target.label, dst, len(data))
        return dst


def _discard(path):
    try:
        os.unlink(path)
    except OSError:
        logger.debug("临时文件清理失败: {}", path)
