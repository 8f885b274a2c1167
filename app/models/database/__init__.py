"""
数据库模型包初始化文件
"""

from .promotion_db import PromotionDB, PromotionUsageDB

__all__ = [
    "PromotionDB",
    "PromotionUsageDB"
]
