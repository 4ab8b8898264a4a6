# watermark_camera/watermark_set.py
"""
水印集合

按插入顺序保存当前会话的水印（后加入的画在上层）。
所有修改都经过校验；非法参数或越界索引不会改变集合，
只记录 last_error 并写一条警告日志。
"""
import threading
from pathlib import Path

from loguru import logger

from watermark_camera.errors import ValidationError
from watermark_camera.models import WatermarkSpec, DEFAULT_TEXT


def default_watermarks():
    """首次使用时的默认水印：一条文字 + 一条时间"""
    return (
        WatermarkSpec.text(DEFAULT_TEXT),
        WatermarkSpec.timestamp("yyyy-MM-dd HH:mm"),
    )


def file_reference_exists(reference):
    """默认的图片引用解析器：引用是一个存在的文件路径"""
    try:
        return Path(reference).is_file()
    except (OSError, ValueError):
        return False


class WatermarkSet:
    """
    会话拥有的水印集合

    image_resolver: callable(content) -> bool，判断图片水印的引用能否解析
    defaults: 自定义的默认集合，None 时使用 default_watermarks()
    """

    def __init__(self, image_resolver=file_reference_exists, defaults=None):
        self._lock = threading.RLock()
        self._image_resolver = image_resolver
        self._defaults = tuple(defaults) if defaults is not None else default_watermarks()
        self._items = list(self._defaults)
        self.last_error = None
        logger.debug("水印集合初始化完成，默认数量: {}", len(self._items))

    # ---- 查询 ----

    def active(self):
        """返回当前水印的只读快照（tuple），外部无法修改内部顺序"""
        with self._lock:
            return tuple(self._items)

    def enabled(self):
        with self._lock:
            return tuple(spec for spec in self._items if spec.enabled)

    def by_kind(self, kind):
        with self._lock:
            return tuple(spec for spec in self._items if spec.kind is kind)

    def has_enabled_watermarks(self):
        return self.enabled_count() > 0

    def enabled_count(self):
        with self._lock:
            return sum(1 for spec in self._items if spec.enabled)

    def __len__(self):
        with self._lock:
            return len(self._items)

    def __iter__(self):
        return iter(self.active())

    def __getitem__(self, index):
        with self._lock:
            return self._items[index]

    # ---- 修改 ----

    def _check(self, spec):
        try:
            spec.validate(self._image_resolver)
        except ValidationError as e:
            self._fail(f"水印数据无效: {e}")
            return False
        return True

    def _check_index(self, index, action):
        if isinstance(index, int) and 0 <= index < len(self._items):
            return True
        self._fail(f"{action}失败，无效的水印索引: {index}")
        return False

    def _fail(self, message):
        self.last_error = message
        logger.warning(message)

    def add(self, spec):
        """校验通过则追加到末尾，返回是否成功"""
        with self._lock:
            if not self._check(spec):
                return False
            self._items.append(spec)
            self.last_error = None
        logger.debug("添加水印: {}", spec.kind.display_name)
        return True

    def update(self, index, spec):
        with self._lock:
            if not self._check_index(index, "更新水印") or not self._check(spec):
                return False
            self._items[index] = spec
            self.last_error = None
        logger.debug("更新水印 #{}: {}", index, spec.kind.display_name)
        return True

    def remove(self, index):
        with self._lock:
            if not self._check_index(index, "移除水印"):
                return False
            removed = self._items.pop(index)
            self.last_error = None
        logger.debug("移除水印: {}", removed.kind.display_name)
        return True

    def set_enabled(self, index, enabled):
        with self._lock:
            if not self._check_index(index, "启用/禁用水印"):
                return False
            spec = self._items[index].with_enabled(enabled)
            if not self._check(spec):
                return False
            self._items[index] = spec
            self.last_error = None
        logger.debug("水印 #{} {}", index, "启用" if enabled else "禁用")
        return True

    def replace_all(self, specs):
        """整体替换（加载预设时使用）；任一条无效则保持原样"""
        specs = list(specs)
        with self._lock:
            for spec in specs:
                if not self._check(spec):
                    return False
            self._items = specs
            self.last_error = None
        logger.info("水印集合已替换，数量: {}", len(specs))
        return True

    def clear(self):
        with self._lock:
            self._items.clear()
        logger.debug("已清除所有水印")

    def reset_to_default(self):
        """恢复默认集合，丢弃所有用户修改"""
        with self._lock:
            self._items = list(self._defaults)
            self.last_error = None
        logger.debug("已重置为默认水印配置")

    # ---- 快捷创建 ----

    def add_text(self, text):
        spec = WatermarkSpec.text(text)
        return spec if self.add(spec) else None

    def add_timestamp(self, time_format="yyyy-MM-dd HH:mm"):
        spec = WatermarkSpec.timestamp(time_format)
        return spec if self.add(spec) else None

    def release(self):
        """会话结束时调用"""
        self.clear()
        logger.debug("水印集合资源已释放")
