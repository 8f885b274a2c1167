"""
仓库包初始化文件 - 数据库访问层
"""

from .promotion_repository import PromotionRepository

__all__ = [
    "PromotionRepository"
]
