from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from app.core.database import get_db_session
from app.repositories.promotion_repository import PromotionRepository
from app.services.promotion_service import PromotionService
from app.models.promotion import (
    Promotion,
    PromotionCreate,
    PromotionUpdate,
    PromotionValidation,
    PromotionStats,
)
from app.models.cart import (
    ApplyPromotionRequest,
    CartPromotionRequest,
    CartPromotionResult,
    PromotionApplicationResult,
    RecordUsageRequest,
    ValidateCodeRequest,
)
from app.models.pricing import CalculatePricesRequest, CalculatePricesResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/promotions", tags=["促销"])


def get_promotion_service(db: AsyncSession = Depends(get_db_session)) -> PromotionService:
    """构造促销服务"""
    return PromotionService(PromotionRepository(db))


# === 前台计算 ===

@router.post("/validate", response_model=PromotionValidation)
async def validate_code(
    request: ValidateCodeRequest,
    service: PromotionService = Depends(get_promotion_service)
):
    """校验促销码是否可用"""
    return await service.validate_code(request.code)


@router.post("/apply", response_model=PromotionApplicationResult)
async def apply_promotion(
    request: ApplyPromotionRequest,
    service: PromotionService = Depends(get_promotion_service)
):
    """将促销码应用到购物车"""
    return await service.apply_promotion(request)


@router.post("/calculate", response_model=CalculatePricesResponse)
async def calculate_prices(
    request: CalculatePricesRequest,
    service: PromotionService = Depends(get_promotion_service)
):
    """批量计算商品及规格的促销价"""
    return await service.calculate_prices(request)


@router.post("/cart", response_model=CartPromotionResult)
async def calculate_cart_promotions(
    request: CartPromotionRequest,
    service: PromotionService = Depends(get_promotion_service)
):
    """计算购物车全部可叠加促销及解锁进度"""
    return await service.calculate_cart_promotions(request)


@router.get("/active", response_model=List[Promotion])
async def list_active_promotions(service: PromotionService = Depends(get_promotion_service)):
    """当前有效的促销列表"""
    return await service.get_active_promotions()


# === 后台管理 ===

@router.get("", response_model=List[Promotion])
async def list_promotions(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: PromotionService = Depends(get_promotion_service)
):
    """全部促销列表"""
    return await service.list_promotions(limit=limit, offset=offset)


@router.get("/stats", response_model=PromotionStats)
async def get_stats(service: PromotionService = Depends(get_promotion_service)):
    """促销统计"""
    return await service.get_stats()


@router.get("/{promotion_id}", response_model=Promotion)
async def get_promotion(
    promotion_id: str,
    service: PromotionService = Depends(get_promotion_service)
):
    return await service.get_promotion(promotion_id)


@router.post("", response_model=Promotion, status_code=201)
async def create_promotion(
    data: PromotionCreate,
    service: PromotionService = Depends(get_promotion_service)
):
    """创建促销"""
    return await service.create_promotion(data)


@router.patch("/{promotion_id}", response_model=Promotion)
async def update_promotion(
    promotion_id: str,
    data: PromotionUpdate,
    service: PromotionService = Depends(get_promotion_service)
):
    """更新促销"""
    return await service.update_promotion(promotion_id, data)


@router.delete("/{promotion_id}")
async def delete_promotion(
    promotion_id: str,
    service: PromotionService = Depends(get_promotion_service)
):
    """删除促销"""
    await service.delete_promotion(promotion_id)
    return {"message": "Promotion supprimée"}


@router.post("/{promotion_id}/toggle", response_model=Promotion)
async def toggle_promotion(
    promotion_id: str,
    service: PromotionService = Depends(get_promotion_service)
):
    """启用/停用促销"""
    return await service.toggle_active(promotion_id)


@router.post("/{promotion_id}/usage")
async def record_usage(
    promotion_id: str,
    request: RecordUsageRequest,
    service: PromotionService = Depends(get_promotion_service)
):
    """订单完成后记录促销使用次数"""
    recorded = await service.increment_usage(
        promotion_id,
        user_id=request.user_id,
        order_id=request.order_id,
        discount_amount=request.discount_amount
    )
    return {"recorded": recorded}
