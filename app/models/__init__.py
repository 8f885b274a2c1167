"""
数据模型包初始化文件
"""

from .promotion import (
    Promotion,
    PromotionCreate,
    PromotionUpdate,
    PromotionValidation,
    PromotionStats,
    PromotionType,
    PromotionScope,
    DiscountType,
    TierDiscountType,
    ApplicationStrategy,
    UserSegment,
    ApplyOn,
    ProgressiveTier,
    BuyXGetYConfig,
    PromotionCondition
)
from .cart import (
    CartItemSnapshot,
    PromotionApplicationResult,
    PromotionProgress,
    CartPromotionResult
)

__all__ = [
    "Promotion",
    "PromotionCreate",
    "PromotionUpdate",
    "PromotionValidation",
    "PromotionStats",
    "PromotionType",
    "PromotionScope",
    "DiscountType",
    "TierDiscountType",
    "ApplicationStrategy",
    "UserSegment",
    "ApplyOn",
    "ProgressiveTier",
    "BuyXGetYConfig",
    "PromotionCondition",
    "CartItemSnapshot",
    "PromotionApplicationResult",
    "PromotionProgress",
    "CartPromotionResult"
]
