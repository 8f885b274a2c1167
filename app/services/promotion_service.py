"""
促销业务服务层
负责加载促销、缓存、后台管理操作，并把计算委托给 PromotionEngine
"""

import logging
from typing import List, Optional
from decimal import Decimal
from pydantic import ValidationError

from app.api.exceptions import (
    InvalidPromotionException,
    PromotionConflictException,
    PromotionNotFoundException,
)
from app.core.config import settings
from app.models.cart import (
    ApplyPromotionRequest,
    CartPromotionRequest,
    CartPromotionResult,
    PromotionApplicationResult,
)
from app.models.pricing import CalculatePricesRequest, CalculatePricesResponse
from app.models.promotion import (
    Promotion,
    PromotionCreate,
    PromotionStats,
    PromotionType,
    PromotionUpdate,
    PromotionValidation,
)
from app.repositories.promotion_repository import PromotionRepository
from app.services.common_cache import promotion_cache
from app.services.promotion_engine import PromotionEngine
from app.services.promotion_eligibility import UserClassifier

logger = logging.getLogger(__name__)


class PromotionService:
    """促销业务服务"""

    def __init__(
        self,
        promotion_repo: PromotionRepository,
        engine: Optional[PromotionEngine] = None,
        classify_user: Optional[UserClassifier] = None
    ):
        self.promotion_repo = promotion_repo
        self.engine = engine or PromotionEngine(classify_user=classify_user)
        self.cache = promotion_cache
        self.cache_prefix = "promotion"
        self.cache_ttl = settings.promotion_cache_ttl

    async def get_promotion(self, promotion_id: str) -> Promotion:
        """根据ID获取促销，不存在时抛出异常"""
        db_promotion = await self.promotion_repo.get_by_id(promotion_id)
        if not db_promotion:
            raise PromotionNotFoundException(promotion_id)
        return self.promotion_repo.to_model(db_promotion)

    async def get_promotion_by_code(self, code: str, use_cache: bool = True) -> Optional[Promotion]:
        """根据促销码获取促销"""
        cache_key = f"{self.cache_prefix}:code:{code.strip().upper()}"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return Promotion(**cached)

        db_promotion = await self.promotion_repo.get_by_code(code)
        if not db_promotion:
            return None

        promotion = self.promotion_repo.to_model(db_promotion)

        if use_cache:
            await self.cache.set(cache_key, promotion.model_dump(), ttl=self.cache_ttl)

        return promotion

    async def get_active_promotions(self, use_cache: bool = True) -> List[Promotion]:
        """获取当前有效的促销"""
        cache_key = f"{self.cache_prefix}:active:all"

        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return [Promotion(**data) for data in cached]

        db_promotions = await self.promotion_repo.get_active_promotions()
        promotions = [self.promotion_repo.to_model(db_promotion) for db_promotion in db_promotions]

        if use_cache:
            await self.cache.set(
                cache_key,
                [promotion.model_dump() for promotion in promotions],
                ttl=self.cache_ttl
            )

        return promotions

    async def list_promotions(self, limit: int = 100, offset: int = 0) -> List[Promotion]:
        """后台促销列表"""
        db_promotions = await self.promotion_repo.get_all(limit=limit, offset=offset)
        return [self.promotion_repo.to_model(db_promotion) for db_promotion in db_promotions]

    async def create_promotion(self, promotion_data: PromotionCreate) -> Promotion:
        """创建促销"""
        if promotion_data.type == PromotionType.CODE and promotion_data.code:
            if await self.promotion_repo.code_exists(promotion_data.code):
                raise PromotionConflictException(promotion_data.code)

        db_promotion = await self.promotion_repo.create(promotion_data.model_dump())
        promotion = self.promotion_repo.to_model(db_promotion)
        logger.info(f"创建促销 {promotion.id} ({promotion.label})")

        await self._clear_promotion_caches()
        return promotion

    async def update_promotion(self, promotion_id: str, promotion_data: PromotionUpdate) -> Promotion:
        """更新促销"""
        existing = await self.get_promotion(promotion_id)

        update_data = promotion_data.model_dump(exclude_unset=True)
        merged = self._validate_merged(existing, update_data)
        update_data = merged.model_dump(include=set(update_data))

        new_code = update_data.get("code")
        if new_code and new_code != existing.code:
            if await self.promotion_repo.code_exists(new_code, exclude_id=promotion_id):
                raise PromotionConflictException(new_code)

        db_promotion = await self.promotion_repo.update(promotion_id, update_data)
        if not db_promotion:
            raise PromotionNotFoundException(promotion_id)

        await self._clear_promotion_caches()
        return self.promotion_repo.to_model(db_promotion)

    @staticmethod
    def _validate_merged(existing: Promotion, update_data: dict) -> PromotionCreate:
        """把部分更新合并到现有记录，并按创建规则重新校验"""
        data = existing.model_dump(include=set(PromotionCreate.model_fields))
        data.update(update_data)
        try:
            return PromotionCreate(**data)
        except ValidationError as e:
            messages = "; ".join(error["msg"] for error in e.errors())
            logger.warning(f"促销 {existing.id} 更新校验失败: {messages}")
            raise InvalidPromotionException(f"Promotion invalide: {messages}")

    async def delete_promotion(self, promotion_id: str) -> None:
        """删除促销"""
        deleted = await self.promotion_repo.delete(promotion_id)
        if not deleted:
            raise PromotionNotFoundException(promotion_id)

        logger.info(f"删除促销 {promotion_id}")
        await self._clear_promotion_caches()

    async def toggle_active(self, promotion_id: str) -> Promotion:
        """启用/停用促销"""
        promotion = await self.get_promotion(promotion_id)
        db_promotion = await self.promotion_repo.update(
            promotion_id, {"is_active": not promotion.is_active}
        )

        await self._clear_promotion_caches()
        return self.promotion_repo.to_model(db_promotion)

    async def validate_code(self, code: str) -> PromotionValidation:
        """校验促销码（不使用缓存，确保实时性）"""
        promotion = await self.get_promotion_by_code(code, use_cache=False)
        return self.engine.validate_code(code, [promotion] if promotion else [])

    async def apply_promotion(self, request: ApplyPromotionRequest) -> PromotionApplicationResult:
        """将促销码应用到购物车"""
        promotion = await self.get_promotion_by_code(request.code, use_cache=False)

        user_usage_count = 0
        if (
            promotion
            and request.user_id
            and promotion.conditions
            and promotion.conditions.max_usage_per_user
        ):
            user_usage_count = await self.promotion_repo.get_user_usage_count(
                request.user_id, promotion.id
            )

        result = self.engine.apply_promotion(
            request.code,
            [promotion] if promotion else [],
            request.items,
            request.subtotal,
            user_id=request.user_id,
            user_usage_count=user_usage_count
        )

        if not result.valid:
            logger.info(f"促销码 {request.code} 应用失败: {result.message}")
        return result

    async def calculate_prices(self, request: CalculatePricesRequest) -> CalculatePricesResponse:
        """批量计算商品促销价"""
        promotions = await self.get_active_promotions()
        return self.engine.calculate_prices(
            request.products,
            promotions,
            promo_code=request.promo_code,
            user_id=request.user_id
        )

    async def calculate_cart_promotions(self, request: CartPromotionRequest) -> CartPromotionResult:
        """计算购物车可叠加的全部促销"""
        promotions = await self.get_active_promotions()

        usage_counts = {}
        if request.user_id:
            usage_counts = await self.promotion_repo.get_user_usage_counts(request.user_id)

        return self.engine.calculate_cart_promotions(
            promotions,
            request.items,
            request.subtotal,
            promo_code=request.promo_code,
            user_id=request.user_id,
            user_usage_counts=usage_counts
        )

    async def increment_usage(
        self,
        promotion_id: str,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
        discount_amount: Decimal = Decimal("0")
    ) -> bool:
        """
        订单完成后记录促销使用

        返回False表示促销不存在或总次数已用完（并发下单时以此为准）
        """
        success = await self.promotion_repo.increment_usage(
            promotion_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount
        )

        if success:
            await self._clear_promotion_caches()
        else:
            logger.warning(f"促销 {promotion_id} 使用次数更新失败，可能已达上限")

        return success

    async def get_stats(self) -> PromotionStats:
        """促销统计"""
        return await self.promotion_repo.get_stats()

    async def _clear_promotion_caches(self):
        """清除所有促销缓存"""
        await self.cache.delete_pattern(f"{self.cache_prefix}:*")
