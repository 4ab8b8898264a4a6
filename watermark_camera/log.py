"""Logging initialization utilities using loguru."""

import sys
from pathlib import Path

from loguru import logger

from watermark_camera.settings import APP_DIR


def get_log_directory():
    return str(APP_DIR / "logs")


def init_logging(log_dir=None, level="INFO"):
    """Log to stderr and a rotating file under log_dir."""
    log_path = Path(log_dir or get_log_directory())
    log_path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        str(log_path / "app_{time:YYYYMMDD}.log"),
        rotation="10 MB",
        retention="10 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        level=level,
    )
    return log_path
