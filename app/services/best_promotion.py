"""
最佳促销选择（批量价格计算用）
"""

from decimal import Decimal
from typing import List, Optional

from app.models.promotion import Promotion, PromotionScope
from app.services.discount_calculator import ZERO, compute_discount

# 不限定商品的范围
GLOBAL_SCOPES = (PromotionScope.SITE_WIDE, PromotionScope.CART)


def promotion_applies_to_product(promo: Promotion, product_id: str) -> bool:
    if promo.scope in GLOBAL_SCOPES:
        return True
    return promo.scope == PromotionScope.PRODUCT and product_id in promo.product_ids


def promotion_applies_to_variant(promo: Promotion, product_id: str, variant_id: str, sku: str) -> bool:
    if promotion_applies_to_product(promo, product_id):
        return True
    return promo.scope == PromotionScope.VARIANT and (
        variant_id in promo.variant_ids or sku in promo.variant_skus
    )


def _pick_best(price: Decimal, candidates: List[Promotion]) -> Optional[Promotion]:
    """折扣最大者胜出，相同折扣取先出现的"""
    best = None
    best_discount = ZERO

    for promo in candidates:
        discount = compute_discount(price, promo)
        if discount > best_discount:
            best_discount = discount
            best = promo

    return best


def find_best_promotion_for_product(
    product_id: str,
    price: Decimal,
    promotions: List[Promotion]
) -> Optional[Promotion]:
    """为无规格商品选出折扣最大的促销"""
    candidates = [p for p in promotions if promotion_applies_to_product(p, product_id)]
    return _pick_best(price, candidates)


def find_best_promotion_for_variant(
    product_id: str,
    variant_id: str,
    sku: str,
    price: Decimal,
    promotions: List[Promotion]
) -> Optional[Promotion]:
    """为规格选出折扣最大的促销，额外匹配 variant 范围"""
    candidates = [
        p for p in promotions
        if promotion_applies_to_variant(p, product_id, variant_id, sku)
    ]
    return _pick_best(price, candidates)
