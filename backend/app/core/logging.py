import logging
import sys
from typing import Optional

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
APP_LOGGER = "woosync"


def _quiet(level: int) -> None:
    for name in settings.LOG_QUIET_LOGGERS.split(","):
        if name.strip():
            logging.getLogger(name.strip()).setLevel(max(logging.WARNING, level))


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    uvicorn 启动时已经给 root 挂了 handler，只调级别；
    直接跑脚本时 root 是空的，这里补一个 stdout handler。
    多次调用是安全的，不会重复挂 handler。
    """
    resolved = (level or settings.LOG_LEVEL).upper()
    root = logging.getLogger()

    if root.handlers:
        root.setLevel(resolved)
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])

    logging.captureWarnings(True)
    _quiet(root.level)
    return logging.getLogger(APP_LOGGER)
