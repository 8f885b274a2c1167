"""
折扣分配策略
调用方已筛选出适用商品，这里决定折扣落在哪些商品上
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from app.models.cart import CartItemSnapshot
from app.models.promotion import Promotion, ApplicationStrategy
from app.services.discount_calculator import ZERO, compute_discount, items_total


@dataclass
class StrategyResult:
    discount: Decimal = ZERO
    affected_items: List[str] = field(default_factory=list)
    allocations: Dict[str, Decimal] = field(default_factory=dict)


def _first_by_price(items: List[CartItemSnapshot], cheapest: bool) -> CartItemSnapshot:
    # 价格相同时取先出现的商品
    selected = items[0]
    for item in items[1:]:
        if cheapest and item.unit_price < selected.unit_price:
            selected = item
        elif not cheapest and item.unit_price > selected.unit_price:
            selected = item
    return selected


def _single_item(item: CartItemSnapshot, promo: Promotion, tier_basis: Optional[Decimal]) -> StrategyResult:
    discount = compute_discount(item.line_total, promo, tier_basis)
    return StrategyResult(
        discount=discount,
        affected_items=[item.product_id],
        allocations={item.product_id: discount}
    )


def _proportional(items: List[CartItemSnapshot], promo: Promotion, tier_basis: Optional[Decimal]) -> StrategyResult:
    total = items_total(items)
    discount = compute_discount(total, promo, tier_basis)

    allocations: Dict[str, Decimal] = {}
    if total > ZERO:
        for item in items:
            share = discount * item.line_total / total
            allocations[item.product_id] = allocations.get(item.product_id, ZERO) + share

    return StrategyResult(
        discount=discount,
        affected_items=[item.product_id for item in items],
        allocations=allocations
    )


def apply_strategy(
    items: List[CartItemSnapshot],
    promo: Promotion,
    tier_basis: Optional[Decimal] = None
) -> StrategyResult:
    """按促销的分配策略计算折扣"""
    if not items:
        return StrategyResult()

    strategy = promo.application_strategy

    if strategy == ApplicationStrategy.CHEAPEST:
        return _single_item(_first_by_price(items, cheapest=True), promo, tier_basis)

    if strategy == ApplicationStrategy.MOST_EXPENSIVE:
        return _single_item(_first_by_price(items, cheapest=False), promo, tier_basis)

    if strategy == ApplicationStrategy.PROPORTIONAL:
        return _proportional(items, promo, tier_basis)

    if strategy == ApplicationStrategy.NON_PROMO_ONLY:
        regular_items = [item for item in items if not item.is_promoted]
        if not regular_items:
            return StrategyResult()
        return StrategyResult(
            discount=compute_discount(items_total(regular_items), promo, tier_basis),
            affected_items=[item.product_id for item in regular_items]
        )

    # ALL：直接按适用商品总额计算
    return StrategyResult(
        discount=compute_discount(items_total(items), promo, tier_basis),
        affected_items=[item.product_id for item in items]
    )
