"""
促销计算引擎
组合适用性判断、分配策略、买X送Y和最佳促销选择，提供：
- apply_promotion: 单个促销码应用于购物车
- calculate_prices: 批量商品/规格价格计算
- calculate_cart_promotions: 按优先级叠加多个促销

引擎是同步纯计算，促销列表由调用方预先加载传入
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional

from app.core.config import settings
from app.models.cart import (
    CartItemSnapshot,
    CartPromotionResult,
    PromotionApplicationResult,
    PromotionProgress,
)
from app.models.pricing import (
    CalculatePricesResponse,
    ProductPriceInput,
    ProductPriceOutput,
    VariantPriceInput,
    VariantPriceOutput,
)
from app.models.promotion import (
    ApplicationStrategy,
    DiscountType,
    Promotion,
    PromotionScope,
    PromotionType,
    PromotionValidation,
)
from app.services.application_strategy import apply_strategy
from app.services.best_promotion import (
    find_best_promotion_for_product,
    find_best_promotion_for_variant,
)
from app.services.buy_x_get_y import calculate_buy_x_get_y
from app.services.discount_calculator import (
    ZERO,
    HUNDRED,
    compute_discount,
    format_amount,
    items_total,
    round_money,
    total_quantity,
)
from app.services.promotion_eligibility import (
    UserClassifier,
    check_conditions,
    check_user_segment,
    check_validity,
    select_eligible_items,
)

logger = logging.getLogger(__name__)

MSG_INVALID_CODE = "Code promo invalide"
MSG_FREE_SHIPPING = "Livraison gratuite offerte !"


@dataclass
class ScopeOutcome:
    """按作用范围计算出的原始折扣"""
    discount: Decimal = ZERO
    affected_items: List[str] = field(default_factory=list)
    scope_items: List[CartItemSnapshot] = field(default_factory=list)
    free_shipping: bool = False


class PromotionEngine:
    """促销计算引擎"""

    def __init__(
        self,
        classify_user: Optional[UserClassifier] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.classify_user = classify_user
        self.clock = clock or datetime.now

    # ------------------------------------------------------------------
    # 校验
    # ------------------------------------------------------------------

    def find_by_code(self, code: str, promotions: List[Promotion]) -> Optional[Promotion]:
        """按促销码查找（不区分大小写，仅限已启用的促销码类型）"""
        normalized = code.strip().upper()
        for promo in promotions:
            if (
                promo.type == PromotionType.CODE
                and promo.is_active
                and promo.code
                and promo.code.upper() == normalized
            ):
                return promo
        return None

    def validate_promotion(self, promo: Promotion) -> PromotionValidation:
        """检查促销的使用次数和有效期"""
        check = check_validity(promo, self.clock())
        if not check.ok:
            return PromotionValidation(valid=False, promotion=promo, reason=check.reason)
        return PromotionValidation(valid=True, promotion=promo)

    def validate_code(self, code: str, promotions: List[Promotion]) -> PromotionValidation:
        promo = self.find_by_code(code, promotions)
        if promo is None:
            return PromotionValidation(valid=False, reason=MSG_INVALID_CODE)
        return self.validate_promotion(promo)

    # ------------------------------------------------------------------
    # 单个促销应用
    # ------------------------------------------------------------------

    def apply_promotion(
        self,
        code: str,
        promotions: List[Promotion],
        items: List[CartItemSnapshot],
        subtotal: Decimal,
        user_id: Optional[str] = None,
        user_usage_count: int = 0
    ) -> PromotionApplicationResult:
        """
        将促销码应用到购物车

        业务规则不满足时返回 valid=False 和提示信息，不抛异常
        """
        promo = self.find_by_code(code, promotions)
        if promo is None:
            return self._invalid(MSG_INVALID_CODE)

        return self.evaluate(promo, items, subtotal, user_id, user_usage_count)

    def evaluate(
        self,
        promo: Promotion,
        items: List[CartItemSnapshot],
        subtotal: Decimal,
        user_id: Optional[str] = None,
        user_usage_count: int = 0
    ) -> PromotionApplicationResult:
        """校验条件后计算一个已解析的促销"""
        check = check_conditions(
            promo,
            items,
            subtotal,
            now=self.clock(),
            user_id=user_id,
            user_usage_count=user_usage_count,
            classify_user=self.classify_user
        )
        if not check.ok:
            return self._invalid(check.reason, promo)

        return self._calculate(promo, items, subtotal)

    def _calculate(
        self,
        promo: Promotion,
        items: List[CartItemSnapshot],
        subtotal: Decimal
    ) -> PromotionApplicationResult:
        outcome = self._compute_scope_discount(promo, items, subtotal)
        discount = outcome.discount
        affected_items = outcome.affected_items
        allocations: Dict[str, Decimal] = {}

        if promo.application_strategy != ApplicationStrategy.ALL and affected_items:
            strategy = apply_strategy(
                outcome.scope_items,
                promo,
                tier_basis=items_total(outcome.scope_items)
            )
            discount = strategy.discount
            affected_items = strategy.affected_items
            allocations = strategy.allocations

        discount_amount = round_money(discount)
        allocations = self._round_allocations(allocations, discount_amount)

        return PromotionApplicationResult(
            valid=True,
            promotion=promo,
            discount_amount=discount_amount,
            affected_items=affected_items,
            message=self._build_message(promo, discount_amount),
            free_shipping=outcome.free_shipping,
            allocations=allocations
        )

    @staticmethod
    def _round_allocations(allocations: Dict[str, Decimal], total: Decimal) -> Dict[str, Decimal]:
        """逐项舍入分摊金额，舍入差额计入最后一项，保证合计等于折扣金额"""
        rounded = {pid: round_money(amount) for pid, amount in allocations.items()}
        if rounded:
            last = list(rounded)[-1]
            rounded[last] += total - sum(rounded.values())
        return rounded

    def _compute_scope_discount(
        self,
        promo: Promotion,
        items: List[CartItemSnapshot],
        subtotal: Decimal
    ) -> ScopeOutcome:
        """按作用范围计算原始折扣和受影响商品"""
        scope = promo.scope

        if scope == PromotionScope.SHIPPING:
            return ScopeOutcome(free_shipping=promo.discount_type == DiscountType.FREE_SHIPPING)

        eligible = select_eligible_items(items, promo)

        if scope == PromotionScope.BUY_X_GET_Y:
            if promo.buy_x_get_y_config is None:
                logger.warning(f"促销 {promo.id} 缺少买X送Y配置，折扣按0处理")
                return ScopeOutcome()
            result = calculate_buy_x_get_y(eligible, promo.buy_x_get_y_config)
            return ScopeOutcome(
                discount=result.discount,
                affected_items=result.affected_items,
                scope_items=[i for i in eligible if i.product_id in result.affected_items]
            )

        if scope in (PromotionScope.SITE_WIDE, PromotionScope.CART):
            excluding = promo.conditions is not None and promo.conditions.exclude_promoted_products
            base = items_total(eligible) if excluding else Decimal(subtotal)
        else:
            base = items_total(eligible)

        return ScopeOutcome(
            discount=compute_discount(base, promo),
            affected_items=[item.product_id for item in eligible],
            scope_items=eligible
        )

    def _build_message(self, promo: Promotion, discount: Decimal) -> str:
        """生成展示给用户的促销信息"""
        if promo.discount_type == DiscountType.FREE_SHIPPING:
            return MSG_FREE_SHIPPING

        currency = settings.currency_symbol
        prefix = f'Code "{promo.code}" appliqué' if promo.code else promo.name

        if promo.scope == PromotionScope.BUY_X_GET_Y and promo.buy_x_get_y_config:
            config = promo.buy_x_get_y_config
            plural = "s" if config.get_quantity > 1 else ""
            return (
                f"{prefix} : {config.buy_quantity} achetés = {config.get_quantity} offert{plural} "
                f"(-{discount:.2f}{currency})"
            )

        if promo.discount_type == DiscountType.PERCENTAGE and not promo.progressive_tiers:
            return f"{prefix} : -{format_amount(promo.discount_value)}% (-{discount:.2f}{currency})"

        return f"{prefix} : -{discount:.2f}{currency}"

    def _invalid(self, message: str, promo: Optional[Promotion] = None) -> PromotionApplicationResult:
        return PromotionApplicationResult(
            valid=False,
            promotion=promo,
            discount_amount=ZERO,
            affected_items=[],
            message=message
        )

    # ------------------------------------------------------------------
    # 批量价格计算
    # ------------------------------------------------------------------

    def calculate_prices(
        self,
        products: List[ProductPriceInput],
        promotions: List[Promotion],
        promo_code: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> CalculatePricesResponse:
        """
        批量计算商品和规格的促销价

        传入促销码时只考虑该促销码，自动促销全部失效；
        每个输入商品/规格都会出现在结果中且顺序不变
        """
        now = self.clock()
        candidates = [p for p in promotions if p.is_active and p.is_in_window(now)]

        if promo_code:
            normalized = promo_code.strip().upper()
            candidates = [p for p in candidates if p.code and p.code.upper() == normalized]

        candidates = [
            p for p in candidates
            if check_user_segment(p, user_id, self.classify_user).ok
        ]

        total_saved = ZERO
        applied_codes: List[str] = []
        outputs: List[ProductPriceOutput] = []

        for product in products:
            if not product.variants:
                price = product.original_price if product.original_price is not None else ZERO
                best = find_best_promotion_for_product(product.product_id, price, candidates)
                saved = round_money(compute_discount(price, best)) if best else ZERO

                outputs.append(ProductPriceOutput(
                    product_id=product.product_id,
                    original_price=price,
                    reduced_price=price - saved,
                    has_promotion=best is not None,
                    variants=[]
                ))
                if best is not None:
                    total_saved += saved * product.quantity
                    self._add_code(applied_codes, best)
                continue

            variant_outputs = []
            for variant in product.variants:
                variant_output, best = self._price_variant(product.product_id, variant, candidates)
                variant_outputs.append(variant_output)
                if best is not None:
                    total_saved += variant_output.saved * variant.quantity
                    self._add_code(applied_codes, best)

            outputs.append(ProductPriceOutput(
                product_id=product.product_id,
                original_price=product.original_price,
                reduced_price=None,
                has_promotion=any(v.has_promotion for v in variant_outputs),
                variants=variant_outputs
            ))

        return CalculatePricesResponse(
            products=outputs,
            total_saved=round_money(total_saved),
            applied_promo_codes=applied_codes
        )

    def _price_variant(self, product_id: str, variant: VariantPriceInput, candidates: List[Promotion]):
        price = variant.original_price
        best = find_best_promotion_for_variant(
            product_id, variant.variant_id, variant.sku, price, candidates
        )
        saved = round_money(compute_discount(price, best)) if best else ZERO
        percentage = 0
        if saved > ZERO and price > ZERO:
            percentage = int((saved / price * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        output = VariantPriceOutput(
            variant_id=variant.variant_id,
            sku=variant.sku,
            original_price=price,
            reduced_price=price - saved,
            saved=saved,
            discount_percentage=percentage,
            has_promotion=best is not None,
            applied_promo_codes=[best.label] if best else []
        )
        return output, best

    @staticmethod
    def _add_code(codes: List[str], promo: Promotion) -> None:
        if promo.label not in codes:
            codes.append(promo.label)

    # ------------------------------------------------------------------
    # 多促销叠加
    # ------------------------------------------------------------------

    def calculate_cart_promotions(
        self,
        promotions: List[Promotion],
        items: List[CartItemSnapshot],
        subtotal: Decimal,
        promo_code: Optional[str] = None,
        user_id: Optional[str] = None,
        user_usage_counts: Optional[Dict[str, int]] = None
    ) -> CartPromotionResult:
        """
        按优先级叠加计算购物车的全部促销

        - 不可叠加的促销：先到先得，且生效后不再追加其它促销
        - 可叠加的促销：依次累加，每次折扣不超过剩余金额
        """
        user_usage_counts = user_usage_counts or {}
        normalized_code = promo_code.strip().upper() if promo_code else None

        candidates = [
            p for p in promotions
            if p.is_active and (
                p.type == PromotionType.AUTOMATIC
                or (normalized_code and p.code and p.code.upper() == normalized_code)
            )
        ]
        # sorted 稳定排序，同优先级保持输入顺序
        candidates = sorted(candidates, key=lambda p: p.priority, reverse=True)

        result = CartPromotionResult()
        total_discount = ZERO
        exclusive_applied = False

        for promo in candidates:
            if exclusive_applied:
                break

            applied = self.evaluate(
                promo, items, subtotal,
                user_id=user_id,
                user_usage_count=user_usage_counts.get(promo.id, 0)
            )
            if not applied.valid or not (applied.discount_amount > ZERO or applied.free_shipping):
                progress = self.build_progress_indicator(promo, items, subtotal)
                if progress:
                    result.progress_indicators.append(progress)
                continue

            if not promo.is_stackable:
                if result.applied_promotions:
                    logger.debug(f"促销 {promo.id} 不可叠加，已有其它促销生效，跳过")
                    continue
                exclusive_applied = True

            remaining = max(Decimal(subtotal) - total_discount, ZERO)
            if applied.discount_amount > remaining:
                applied = applied.model_copy(update={"discount_amount": round_money(remaining)})

            result.applied_promotions.append(applied)
            total_discount += applied.discount_amount
            result.free_shipping = result.free_shipping or applied.free_shipping

        result.total_discount = round_money(total_discount)
        return result

    def build_progress_indicator(
        self,
        promo: Promotion,
        items: List[CartItemSnapshot],
        subtotal: Decimal
    ) -> Optional[PromotionProgress]:
        """促销接近解锁时生成进度提示；过期或未开始的促销不提示"""
        if not check_validity(promo, self.clock()).ok:
            return None

        ratio = Decimal(str(settings.progress_threshold_ratio))
        title = promo.description or promo.name
        conditions = promo.conditions
        qty = total_quantity(items)
        subtotal = Decimal(subtotal)

        if conditions and conditions.min_amount and subtotal < conditions.min_amount:
            remaining = conditions.min_amount - subtotal
            if remaining <= conditions.min_amount * ratio:
                return PromotionProgress(
                    promotion=promo,
                    type="amount",
                    current=subtotal,
                    target=conditions.min_amount,
                    remaining=remaining,
                    message=f"Plus que {remaining:.2f}{settings.currency_symbol} pour débloquer : {title}"
                )

        if conditions and conditions.min_quantity and qty < conditions.min_quantity:
            remaining_qty = conditions.min_quantity - qty
            if remaining_qty <= conditions.min_quantity * ratio:
                plural = "s" if remaining_qty > 1 else ""
                return PromotionProgress(
                    promotion=promo,
                    type="quantity",
                    current=Decimal(qty),
                    target=Decimal(conditions.min_quantity),
                    remaining=Decimal(remaining_qty),
                    message=f"Plus que {remaining_qty} article{plural} pour débloquer : {title}"
                )

        config = promo.buy_x_get_y_config
        if promo.scope == PromotionScope.BUY_X_GET_Y and config:
            target = config.buy_quantity + config.get_quantity
            if 0 < qty < target:
                remaining_qty = target - qty
                plural = "s" if remaining_qty > 1 else ""
                gift_plural = "s" if config.get_quantity > 1 else ""
                return PromotionProgress(
                    promotion=promo,
                    type="buy-x-get-y",
                    current=Decimal(qty),
                    target=Decimal(target),
                    remaining=Decimal(remaining_qty),
                    message=(
                        f"Plus que {remaining_qty} article{plural} pour "
                        f"{config.get_quantity} offert{gift_plural}"
                    )
                )

        return None
