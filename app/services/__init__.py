"""
服务包初始化文件
"""

from .common_cache import SimpleCache, promotion_cache
from .promotion_engine import PromotionEngine
from .promotion_service import PromotionService

__all__ = [
    "SimpleCache",
    "promotion_cache",
    "PromotionEngine",
    "PromotionService"
]
