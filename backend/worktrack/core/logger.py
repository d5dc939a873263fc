"""
日志配置
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

LOGGER_NAME = "worktrack"

COMMON_LOG_FORMAT = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)


def setup_logging(level: Union[str, int] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """初始化 worktrack 日志器（终端 + 可选的滚动文件）"""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(COMMON_LOG_FORMAT)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(COMMON_LOG_FORMAT)
        logger.addHandler(file_handler)

    # 不向根日志器重复输出
    logger.propagate = False
    logger.debug("日志初始化完成: level=%s file=%s", level, log_file or "-")
    return logger
