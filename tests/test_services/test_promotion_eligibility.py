"""
促销适用性判断测试
"""

from datetime import datetime, timedelta
from decimal import Decimal

from app.models.promotion import PromotionCondition, PromotionScope, UserSegment
from app.services.promotion_eligibility import (
    MSG_EXPIRED,
    MSG_SEGMENT,
    MSG_USAGE_LIMIT,
    MSG_USER_LIMIT,
    check_conditions,
    check_user_segment,
    check_validity,
    item_matches_scope,
    select_eligible_items,
)


class TestCheckValidity:
    """有效期和总次数检查"""

    def test_not_started(self, make_promotion, fixed_now):
        promo = make_promotion(start_date=datetime(2025, 7, 1))
        check = check_validity(promo, fixed_now)

        assert check.ok is False
        assert check.reason == "Cette promotion sera active à partir du 01/07/2025"

    def test_expired(self, make_promotion, fixed_now):
        promo = make_promotion(end_date=fixed_now - timedelta(seconds=1))
        assert check_validity(promo, fixed_now).reason == MSG_EXPIRED

    def test_usage_limit_checked_first(self, make_promotion, fixed_now):
        """测试次数上限优先于有效期"""
        promo = make_promotion(
            end_date=fixed_now - timedelta(days=1),
            current_usage=5,
            conditions=PromotionCondition(max_usage_total=5)
        )
        assert check_validity(promo, fixed_now).reason == MSG_USAGE_LIMIT

    def test_valid(self, make_promotion, fixed_now):
        assert check_validity(make_promotion(end_date=fixed_now), fixed_now).ok is True


class TestCheckConditions:
    """全局条件检查"""

    def test_min_amount(self, make_promotion, make_item, fixed_now):
        promo = make_promotion(conditions=PromotionCondition(min_amount=Decimal("50")))
        check = check_conditions(promo, [make_item("A", "30")], Decimal("30.00"), now=fixed_now)

        assert check.ok is False
        assert check.reason == "Montant minimum requis : 50€"

    def test_min_quantity(self, make_promotion, make_item, fixed_now):
        promo = make_promotion(conditions=PromotionCondition(min_quantity=3))
        check = check_conditions(promo, [make_item("A", "30", 2)], Decimal("60"), now=fixed_now)

        assert check.ok is False
        assert check.reason == "Quantité minimum requise : 3 articles"

    def test_amount_checked_before_quantity(self, make_promotion, make_item, fixed_now):
        promo = make_promotion(conditions=PromotionCondition(min_amount=Decimal("100"), min_quantity=5))
        check = check_conditions(promo, [make_item("A", "10")], Decimal("10"), now=fixed_now)
        assert check.reason.startswith("Montant minimum requis")

    def test_per_user_limit(self, make_promotion, make_item, fixed_now):
        """测试单用户使用次数"""
        promo = make_promotion(conditions=PromotionCondition(max_usage_per_user=1))
        items = [make_item("A", "10")]

        blocked = check_conditions(promo, items, Decimal("10"), now=fixed_now, user_id="u1", user_usage_count=1)
        assert blocked.reason == MSG_USER_LIMIT

        # 游客不做单用户限制
        guest = check_conditions(promo, items, Decimal("10"), now=fixed_now, user_usage_count=1)
        assert guest.ok is True

    def test_all_conditions_met(self, make_promotion, make_item, fixed_now):
        promo = make_promotion(conditions=PromotionCondition(min_amount=Decimal("20"), min_quantity=2))
        check = check_conditions(promo, [make_item("A", "15", 2)], Decimal("30"), now=fixed_now)
        assert check.ok is True


class TestUserSegment:
    """用户分群检查"""

    def test_no_segment_required(self, make_promotion):
        assert check_user_segment(make_promotion(), None, None).ok is True

    def test_segment_all_passes_for_guest(self, make_promotion):
        promo = make_promotion(conditions=PromotionCondition(user_segment=UserSegment.ALL))
        assert check_user_segment(promo, None, None).ok is True

    def test_guest_rejected(self, make_promotion):
        promo = make_promotion(conditions=PromotionCondition(user_segment=UserSegment.VIP))
        assert check_user_segment(promo, None, lambda uid: UserSegment.VIP).reason == MSG_SEGMENT

    def test_without_classifier_rejected(self, make_promotion):
        promo = make_promotion(conditions=PromotionCondition(user_segment=UserSegment.VIP))
        assert check_user_segment(promo, "u1", None).ok is False

    def test_exact_match(self, make_promotion):
        promo = make_promotion(conditions=PromotionCondition(user_segment=UserSegment.FIRST_PURCHASE))
        segments = {"new": UserSegment.FIRST_PURCHASE, "old": UserSegment.RETURNING}

        assert check_user_segment(promo, "new", segments.get).ok is True
        assert check_user_segment(promo, "old", segments.get).ok is False
        assert check_user_segment(promo, "unknown", segments.get).ok is False


class TestScopeMatching:
    """商品范围匹配"""

    def test_site_wide_matches_everything(self, make_promotion, make_item):
        promo = make_promotion()
        assert item_matches_scope(make_item("A", "10"), promo) is True

    def test_product_scope(self, make_promotion, make_item):
        promo = make_promotion(scope=PromotionScope.PRODUCT, product_ids=["A"])
        assert item_matches_scope(make_item("A", "10"), promo) is True
        assert item_matches_scope(make_item("B", "10"), promo) is False

    def test_category_scope(self, make_promotion, make_item):
        promo = make_promotion(scope=PromotionScope.CATEGORY, category_slugs=["peintures"])
        assert item_matches_scope(make_item("A", "10", category_slug="peintures"), promo) is True
        assert item_matches_scope(make_item("B", "10", category_slug="sculptures"), promo) is False
        assert item_matches_scope(make_item("C", "10"), promo) is False

    def test_subcategory_and_format_scope(self, make_promotion, make_item):
        sub = make_promotion(scope=PromotionScope.SUBCATEGORY, sub_category_slugs=["aquarelles"])
        fmt = make_promotion(scope=PromotionScope.FORMAT, format_ids=["A3"])
        item = make_item("A", "10", sub_category_slug="aquarelles", format_id="A4")

        assert item_matches_scope(item, sub) is True
        assert item_matches_scope(item, fmt) is False

    def test_variant_scope(self, make_promotion, make_item):
        promo = make_promotion(scope=PromotionScope.VARIANT, variant_ids=["v1"])
        assert item_matches_scope(make_item("A", "10", variant_id="v1"), promo) is True
        assert item_matches_scope(make_item("A", "10", variant_id="v2"), promo) is False

    def test_buy_x_get_y_ignores_product_ids(self, make_promotion, make_item):
        promo = make_promotion(scope=PromotionScope.BUY_X_GET_Y, product_ids=["A"])
        assert item_matches_scope(make_item("A", "10"), promo) is True
        assert item_matches_scope(make_item("B", "5"), promo) is True

    def test_shipping_scope_matches_nothing(self, make_promotion, make_item):
        promo = make_promotion(scope=PromotionScope.SHIPPING)
        assert item_matches_scope(make_item("A", "10"), promo) is False

    def test_exclude_promoted_products(self, make_promotion, make_item):
        """测试排除已促销商品并保持顺序"""
        promo = make_promotion(conditions=PromotionCondition(exclude_promoted_products=True))
        items = [
            make_item("A", "10"),
            make_item("B", "20", is_promoted=True),
            make_item("C", "30"),
        ]

        eligible = select_eligible_items(items, promo)
        assert [item.product_id for item in eligible] == ["A", "C"]
