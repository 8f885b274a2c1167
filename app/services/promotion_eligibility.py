"""
促销适用性判断
决定哪些购物车商品符合促销范围，以及促销的全局条件是否满足
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from app.core.config import settings
from app.models.cart import CartItemSnapshot
from app.models.promotion import Promotion, PromotionScope, UserSegment
from app.services.discount_calculator import format_amount, total_quantity

logger = logging.getLogger(__name__)

# 用户分群由外部服务（用户/订单历史）提供
UserClassifier = Callable[[str], Optional[UserSegment]]

MSG_USAGE_LIMIT = "Cette promotion a atteint sa limite d'utilisations"
MSG_EXPIRED = "Cette promotion a expiré"
MSG_USER_LIMIT = "Vous avez atteint la limite d'utilisation de cette promotion"
MSG_SEGMENT = "Cette promotion n'est pas disponible pour votre profil"


@dataclass(frozen=True)
class ConditionCheck:
    ok: bool
    reason: Optional[str] = None


PASSED = ConditionCheck(ok=True)


def check_validity(promo: Promotion, now: Optional[datetime] = None) -> ConditionCheck:
    """检查使用次数上限和有效期（顺序：次数、开始时间、结束时间）"""
    now = now or datetime.now()

    if promo.usage_limit_reached():
        return ConditionCheck(ok=False, reason=MSG_USAGE_LIMIT)

    if now < promo.start_date:
        return ConditionCheck(
            ok=False,
            reason=f"Cette promotion sera active à partir du {promo.start_date:%d/%m/%Y}"
        )

    if promo.end_date is not None and now > promo.end_date:
        return ConditionCheck(ok=False, reason=MSG_EXPIRED)

    return PASSED


def check_user_segment(
    promo: Promotion,
    user_id: Optional[str],
    classify_user: Optional[UserClassifier]
) -> ConditionCheck:
    """检查用户分群条件"""
    required = promo.conditions.user_segment if promo.conditions else None
    if required is None or required == UserSegment.ALL:
        return PASSED

    if not user_id or classify_user is None:
        return ConditionCheck(ok=False, reason=MSG_SEGMENT)

    segment = classify_user(user_id)
    if segment != required:
        logger.debug(f"用户 {user_id} 分群 {segment} 不符合促销 {promo.id} 要求 {required}")
        return ConditionCheck(ok=False, reason=MSG_SEGMENT)

    return PASSED


def check_conditions(
    promo: Promotion,
    items: List[CartItemSnapshot],
    subtotal: Decimal,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
    user_usage_count: int = 0,
    classify_user: Optional[UserClassifier] = None
) -> ConditionCheck:
    """
    按顺序检查促销条件，遇到第一个失败即返回

    1. 总使用次数  2. 开始时间  3. 结束时间  4. 最低金额  5. 最少数量
    6. 单用户使用次数  7. 用户分群
    """
    validity = check_validity(promo, now)
    if not validity.ok:
        return validity

    conditions = promo.conditions
    if conditions is None:
        return PASSED

    if conditions.min_amount and subtotal < conditions.min_amount:
        return ConditionCheck(
            ok=False,
            reason=f"Montant minimum requis : {format_amount(conditions.min_amount)}{settings.currency_symbol}"
        )

    if conditions.min_quantity and total_quantity(items) < conditions.min_quantity:
        return ConditionCheck(
            ok=False,
            reason=f"Quantité minimum requise : {conditions.min_quantity} articles"
        )

    if conditions.max_usage_per_user and user_id and user_usage_count >= conditions.max_usage_per_user:
        return ConditionCheck(ok=False, reason=MSG_USER_LIMIT)

    return check_user_segment(promo, user_id, classify_user)


def item_matches_scope(item: CartItemSnapshot, promo: Promotion) -> bool:
    """判断单个商品是否在促销范围内"""
    scope = promo.scope

    if scope in (PromotionScope.SITE_WIDE, PromotionScope.CART, PromotionScope.USER_SEGMENT):
        return True
    if scope == PromotionScope.PRODUCT:
        return item.product_id in promo.product_ids
    if scope == PromotionScope.CATEGORY:
        return item.category_slug is not None and item.category_slug in promo.category_slugs
    if scope == PromotionScope.SUBCATEGORY:
        return item.sub_category_slug is not None and item.sub_category_slug in promo.sub_category_slugs
    if scope == PromotionScope.FORMAT:
        return item.format_id is not None and item.format_id in promo.format_ids
    if scope == PromotionScope.BUY_X_GET_Y:
        # 买X送Y作用于整个购物车，不按 product_ids 过滤
        return True
    if scope == PromotionScope.VARIANT:
        return item.variant_id is not None and item.variant_id in promo.variant_ids
    if scope == PromotionScope.SUBSCRIPTION:
        return item.product_id in promo.subscription_plan_ids

    # shipping 不按商品筛选
    return False


def select_eligible_items(items: List[CartItemSnapshot], promo: Promotion) -> List[CartItemSnapshot]:
    """筛选符合促销范围的商品，保持输入顺序"""
    candidates = items
    if promo.conditions and promo.conditions.exclude_promoted_products:
        candidates = [item for item in items if not item.is_promoted]

    return [item for item in candidates if item_matches_scope(item, promo)]
