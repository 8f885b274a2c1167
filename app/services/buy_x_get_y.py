"""
买X送Y计算
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from app.models.cart import CartItemSnapshot
from app.models.promotion import BuyXGetYConfig, ApplyOn
from app.services.discount_calculator import ZERO, total_quantity


@dataclass
class BuyXGetYResult:
    discount: Decimal = ZERO
    affected_items: List[str] = field(default_factory=list)
    free_units: int = 0


def calculate_buy_x_get_y(items: List[CartItemSnapshot], config: BuyXGetYConfig) -> BuyXGetYResult:
    """
    计算买X送Y的赠送金额

    每 (X+Y) 件组成一组，每组赠送Y件；赠品按配置从最便宜或最贵的商品开始选取
    """
    set_size = config.buy_quantity + config.get_quantity
    sets = total_quantity(items) // set_size
    if sets == 0:
        return BuyXGetYResult()

    # sorted 是稳定排序，同价商品保持输入顺序
    sorted_items = sorted(
        items,
        key=lambda item: item.unit_price,
        reverse=config.apply_on == ApplyOn.MOST_EXPENSIVE
    )

    qty_to_gift = sets * config.get_quantity
    result = BuyXGetYResult()

    for item in sorted_items:
        if qty_to_gift == 0:
            break
        gift_qty = min(qty_to_gift, item.quantity)
        result.discount += item.unit_price * gift_qty
        result.free_units += gift_qty
        result.affected_items.append(item.product_id)
        qty_to_gift -= gift_qty

    return result
