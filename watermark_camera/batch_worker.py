# watermark_camera/batch_worker.py
import concurrent.futures
import threading

from loguru import logger

from watermark_camera.pipeline import PersistenceOutcome, PersistenceState


def safe_persist(persister, capture, watermarks, device, location=None, on_transition=None):
    """执行保存流程；意外异常也转换为 FAILED 结果，调用方总能拿到 PersistenceOutcome"""
    try:
        return persister.persist(capture, watermarks, device, location, on_transition)
    except Exception as e:
        # 流程内部已经把可预期的错误转换为结果，这里兜住意外错误
        logger.exception("保存流程异常")
        return PersistenceOutcome(PersistenceState.FAILED, f"保存照片失败: {e}", "")


class CaptureSaveWorker:
    """
    后台保存线程池：每张照片一个任务，互不阻塞相机回调线程。

    persister: CapturePersister
    progress_callback(done, total, outcome): 每个任务完成时调用（在工作线程中）
    """

    def __init__(self, persister, max_workers=2, progress_callback=None):
        self.persister = persister
        self.progress_callback = progress_callback
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="capture-save")
        self._lock = threading.Lock()
        self._submitted = 0
        self._done = 0

    def submit(self, capture, watermarks, device, location=None, on_transition=None):
        """
        提交一张照片，立即返回 Future[PersistenceOutcome]。

        水印集合在这里取快照，之后对集合的修改只影响后续拍摄。
        """
        specs = watermarks.active() if hasattr(watermarks, "active") else tuple(watermarks)
        with self._lock:
            self._submitted += 1
        future = self._executor.submit(self._run, capture, specs, device, location, on_transition)
        future.add_done_callback(self._on_done)
        return future

    def _run(self, capture, specs, device, location, on_transition):
        return safe_persist(self.persister, capture, specs, device, location, on_transition)

    def _on_done(self, future):
        with self._lock:
            self._done += 1
            done, total = self._done, self._submitted
        if self.progress_callback and not future.cancelled():
            self.progress_callback(done, total, future.result())

    @property
    def pending(self):
        with self._lock:
            return self._submitted - self._done

    def shutdown(self, wait=True):
        self._executor.shutdown(wait=wait)
        logger.debug("保存线程池已关闭")


def persist_all(persister, captures, watermarks, device, max_workers=2, progress_callback=None):
    """批量保存多张照片，按完成顺序返回结果列表"""
    worker = CaptureSaveWorker(persister, max_workers, progress_callback)
    try:
        futures = [worker.submit(c, watermarks, device) for c in captures]
        return [f.result() for f in concurrent.futures.as_completed(futures)]
    finally:
        worker.shutdown()
