"""
购物车促销计算相关模型
"""

from decimal import Decimal
from typing import List, Optional, Dict
from pydantic import BaseModel, Field

from app.models.promotion import Promotion


class CartItemSnapshot(BaseModel):
    """购物车行项目快照（由购物车服务提供，本模块不持久化）"""

    product_id: str = Field(..., description="商品ID")
    variant_id: Optional[str] = Field(None, description="规格ID")
    quantity: int = Field(..., ge=1, description="数量")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    category_slug: Optional[str] = None
    sub_category_slug: Optional[str] = None
    format_id: Optional[str] = None
    is_promoted: bool = Field(default=False, description="商品是否已按促销价出售")

    @property
    def line_total(self) -> Decimal:
        """行小计"""
        return self.unit_price * self.quantity


class ApplyPromotionRequest(BaseModel):
    """应用促销码请求"""

    code: str = Field(..., min_length=1, description="促销码")
    items: List[CartItemSnapshot] = Field(default_factory=list, description="购物车商品")
    subtotal: Decimal = Field(..., ge=0, description="购物车小计")
    user_id: Optional[str] = Field(None, description="用户ID，游客为空")


class CartPromotionRequest(BaseModel):
    """购物车全部促销计算请求"""

    items: List[CartItemSnapshot] = Field(default_factory=list)
    subtotal: Decimal = Field(..., ge=0)
    promo_code: Optional[str] = None
    user_id: Optional[str] = None


class ValidateCodeRequest(BaseModel):
    """校验促销码请求"""

    code: str = Field(..., min_length=1)


class PromotionApplicationResult(BaseModel):
    """单个促销应用结果"""

    valid: bool = Field(..., description="是否成功应用")
    promotion: Optional[Promotion] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="折扣金额")
    affected_items: List[str] = Field(default_factory=list, description="受影响的商品ID")
    message: str = Field(default="", description="提示信息")
    free_shipping: bool = Field(default=False, description="是否免运费")
    allocations: Dict[str, Decimal] = Field(default_factory=dict, description="按商品分摊的折扣")


class PromotionProgress(BaseModel):
    """促销解锁进度提示"""

    promotion: Promotion
    type: str = Field(..., description="amount / quantity / buy-x-get-y")
    current: Decimal
    target: Decimal
    remaining: Decimal
    message: str


class CartPromotionResult(BaseModel):
    """购物车多促销叠加计算结果"""

    applied_promotions: List[PromotionApplicationResult] = Field(default_factory=list)
    progress_indicators: List[PromotionProgress] = Field(default_factory=list)
    total_discount: Decimal = Field(default=Decimal("0"), ge=0)
    free_shipping: bool = False


class RecordUsageRequest(BaseModel):
    """订单完成后记录促销使用"""

    user_id: Optional[str] = None
    order_id: Optional[str] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
