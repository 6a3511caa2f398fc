"""组件级 Logger 配置"""
import os
import datetime
import logging
from typing import Optional

LOG_DIR_ENV = "AISDK_LOG_DIR"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, filename: Optional[str] = None) -> logging.Logger:
    """
    获取组件 Logger

    设置了 AISDK_LOG_DIR 环境变量时，额外挂载按日期命名的文件 Handler，并关闭向上冒泡；
    否则交由应用的 logging 配置处理。

    Args:
        name: Logger 名称（如 "AISDK.Executor"）
        filename: 日志文件前缀，默认取 name 的小写形式
    """
    logger = logging.getLogger(name)
    log_dir = os.environ.get(LOG_DIR_ENV)
    if not log_dir or any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        return logger

    prefix = filename or name.lower().replace(".", "_")
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, f"{prefix}_{datetime.datetime.now().strftime('%Y%m%d')}.log")
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(file_handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def mask_secret(secret: str, visible: int = 4) -> str:
    """密钥脱敏：只保留末尾几位"""
    if not secret:
        return ""
    if len(secret) <= visible:
        return "*" * len(secret)
    return "*" * 6 + secret[-visible:]
