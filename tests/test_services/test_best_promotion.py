"""
最佳促销选择测试
"""

from decimal import Decimal

from app.models.promotion import DiscountType, PromotionScope
from app.services.best_promotion import (
    find_best_promotion_for_product,
    find_best_promotion_for_variant,
)


class TestBestPromotion:

    def test_largest_discount_wins(self, make_promotion):
        ten = make_promotion(id="p10", discount_value=Decimal("10"))
        fixed = make_promotion(id="f8", discount_type=DiscountType.FIXED, discount_value=Decimal("8"))
        best = find_best_promotion_for_product("A", Decimal("40"), [ten, fixed])
        assert best.id == "f8"

    def test_first_seen_wins_ties(self, make_promotion):
        first = make_promotion(id="first", discount_value=Decimal("10"))
        second = make_promotion(id="second", discount_type=DiscountType.FIXED, discount_value=Decimal("4"))
        assert find_best_promotion_for_product("A", Decimal("40"), [first, second]).id == "first"

    def test_product_scope_must_match(self, make_promotion):
        promo = make_promotion(scope=PromotionScope.PRODUCT, product_ids=["B"])
        assert find_best_promotion_for_product("A", Decimal("40"), [promo]) is None
        assert find_best_promotion_for_product("B", Decimal("40"), [promo]) is promo

    def test_category_scope_ignored(self, make_promotion):
        """批量计价只看全站、购物车和商品范围"""
        promo = make_promotion(scope=PromotionScope.CATEGORY, category_slugs=["peintures"])
        assert find_best_promotion_for_product("A", Decimal("40"), [promo]) is None

    def test_zero_discount_returns_none(self, make_promotion):
        promo = make_promotion(discount_value=Decimal("0"))
        assert find_best_promotion_for_product("A", Decimal("40"), [promo]) is None

    def test_variant_by_id_or_sku(self, make_promotion):
        by_id = make_promotion(id="vid", scope=PromotionScope.VARIANT, variant_ids=["v1"])
        by_sku = make_promotion(id="vsku", scope=PromotionScope.VARIANT, variant_skus=["SKU-2"])

        assert find_best_promotion_for_variant("A", "v1", "SKU-1", Decimal("20"), [by_id, by_sku]).id == "vid"
        assert find_best_promotion_for_variant("A", "v2", "SKU-2", Decimal("20"), [by_id, by_sku]).id == "vsku"
        assert find_best_promotion_for_variant("A", "v3", "SKU-3", Decimal("20"), [by_id, by_sku]) is None
