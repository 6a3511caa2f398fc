"""通用工具"""
from .logger import get_logger, mask_secret

__all__ = ["get_logger", "mask_secret"]
