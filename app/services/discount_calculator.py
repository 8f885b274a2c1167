"""
折扣金额计算
纯函数，不做任何I/O；金额统一使用Decimal，只在最终结果处四舍五入
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from app.core.config import settings
from app.models.cart import CartItemSnapshot
from app.models.promotion import Promotion, DiscountType, ProgressiveTier, TierDiscountType

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(amount: Decimal) -> Decimal:
    """金额四舍五入到配置的小数位"""
    quantum = Decimal(1).scaleb(-settings.money_decimal_places)
    return Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """整数金额不带小数，其余保留两位"""
    amount = Decimal(amount)
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{round_money(amount):.2f}"


def items_total(items: Iterable[CartItemSnapshot]) -> Decimal:
    """计算商品行合计（unit_price * quantity 之和）"""
    return sum((item.unit_price * item.quantity for item in items), ZERO)


def total_quantity(items: Iterable[CartItemSnapshot]) -> int:
    return sum(item.quantity for item in items)


def get_applicable_tier(tiers: List[ProgressiveTier], amount: Decimal) -> Optional[ProgressiveTier]:
    """找到金额已达到的最高档位"""
    for tier in sorted(tiers, key=lambda t: t.min_amount, reverse=True):
        if amount >= tier.min_amount:
            return tier
    return None


def resolve_discount_rule(
    promo: Promotion,
    tier_basis: Optional[Decimal] = None
) -> Tuple[Optional[DiscountType], Decimal]:
    """
    解析实际使用的折扣规则

    有阶梯配置时由达到的档位决定类型和值，未达到任何档位返回 (None, 0)
    """
    if not promo.progressive_tiers:
        return promo.discount_type, Decimal(promo.discount_value or 0)

    tier = get_applicable_tier(promo.progressive_tiers, tier_basis if tier_basis is not None else ZERO)
    if tier is None:
        return None, ZERO

    if tier.discount_type == TierDiscountType.PERCENTAGE:
        return DiscountType.PERCENTAGE, tier.discount_value
    return DiscountType.FIXED, tier.discount_value


def compute_discount(
    base_amount: Decimal,
    promo: Promotion,
    tier_basis: Optional[Decimal] = None
) -> Decimal:
    """
    根据促销规则计算折扣金额（未取整）

    - percentage: base * value / 100
    - fixed: min(value, base)
    - free_shipping 或未知类型: 0
    结果不小于0；固定金额折扣不会超过base
    """
    base_amount = Decimal(base_amount)
    if base_amount <= ZERO:
        return ZERO

    if tier_basis is None:
        tier_basis = base_amount
    discount_type, value = resolve_discount_rule(promo, tier_basis)

    if discount_type == DiscountType.PERCENTAGE:
        discount = base_amount * value / HUNDRED
    elif discount_type == DiscountType.FIXED:
        discount = min(value, base_amount)
    else:
        return ZERO

    return max(discount, ZERO)
