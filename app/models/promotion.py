"""
促销相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum


def to_naive_local(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间转换为本地无时区时间，与 datetime.now() 保持可比"""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class PromotionType(str, Enum):
    """促销类型枚举"""
    AUTOMATIC = "automatic"  # 自动生效
    CODE = "code"  # 需要输入促销码


class PromotionScope(str, Enum):
    """促销作用范围枚举"""
    PRODUCT = "product"
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    SITE_WIDE = "site-wide"
    FORMAT = "format"
    CART = "cart"
    SHIPPING = "shipping"
    USER_SEGMENT = "user-segment"
    BUY_X_GET_Y = "buy-x-get-y"
    SUBSCRIPTION = "subscription"
    VARIANT = "variant"


class DiscountType(str, Enum):
    """折扣计算类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣
    FIXED = "fixed"  # 固定金额折扣
    FREE_SHIPPING = "free_shipping"  # 免运费


class TierDiscountType(str, Enum):
    """阶梯折扣类型"""
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class ApplicationStrategy(str, Enum):
    """折扣分配策略枚举"""
    ALL = "all"
    CHEAPEST = "cheapest"
    MOST_EXPENSIVE = "most-expensive"
    PROPORTIONAL = "proportional"
    NON_PROMO_ONLY = "non-promo-only"


class UserSegment(str, Enum):
    """用户分群枚举"""
    FIRST_PURCHASE = "first-purchase"
    RETURNING = "returning"
    VIP = "vip"
    ALL = "all"


class ApplyOn(str, Enum):
    """买X送Y赠品选择方式"""
    CHEAPEST = "cheapest"
    MOST_EXPENSIVE = "most-expensive"


class ProgressiveTier(BaseModel):
    """阶梯折扣档位"""

    min_amount: Decimal = Field(..., ge=0, description="档位最低金额")
    discount_value: Decimal = Field(..., ge=0, description="档位折扣值")
    discount_type: TierDiscountType = Field(..., description="档位折扣类型")


class BuyXGetYConfig(BaseModel):
    """买X送Y配置"""

    buy_quantity: int = Field(..., ge=1, description="购买数量X")
    get_quantity: int = Field(..., ge=1, description="赠送数量Y")
    apply_on: ApplyOn = Field(default=ApplyOn.CHEAPEST, description="赠品选择方式")


class PromotionCondition(BaseModel):
    """促销使用条件，缺省表示无限制"""

    min_quantity: Optional[int] = Field(None, ge=1, description="最少商品数量")
    min_amount: Optional[Decimal] = Field(None, ge=0, description="最低订单金额")
    max_usage_per_user: Optional[int] = Field(None, ge=1, description="单用户使用次数上限")
    max_usage_total: Optional[int] = Field(None, ge=1, description="总使用次数上限")
    user_segment: Optional[UserSegment] = Field(None, description="目标用户分群")
    exclude_promoted_products: bool = Field(default=False, description="排除已促销商品")


class Promotion(BaseModel):
    """促销规则模型（已持久化的记录，计算时只读）"""

    id: str = Field(..., description="促销ID")
    name: str = Field(..., description="促销名称")
    description: Optional[str] = Field(None, description="促销描述")
    type: PromotionType = Field(default=PromotionType.AUTOMATIC, description="促销类型")
    code: Optional[str] = Field(None, max_length=50, description="促销码")
    scope: PromotionScope = Field(..., description="作用范围")
    discount_type: DiscountType = Field(..., description="折扣计算类型")
    discount_value: Decimal = Field(default=Decimal("0"), description="折扣值")

    # 各作用范围对应的目标列表
    product_ids: List[str] = Field(default_factory=list)
    category_slugs: List[str] = Field(default_factory=list)
    sub_category_slugs: List[str] = Field(default_factory=list)
    format_ids: List[str] = Field(default_factory=list)
    subscription_plan_ids: List[str] = Field(default_factory=list)
    variant_ids: List[str] = Field(default_factory=list)
    variant_skus: List[str] = Field(default_factory=list)

    application_strategy: ApplicationStrategy = Field(default=ApplicationStrategy.ALL)
    progressive_tiers: List[ProgressiveTier] = Field(default_factory=list)
    buy_x_get_y_config: Optional[BuyXGetYConfig] = None

    is_stackable: bool = Field(default=False, description="是否可叠加")
    priority: int = Field(default=5, description="优先级，越高越先计算")
    conditions: Optional[PromotionCondition] = None

    start_date: datetime = Field(..., description="开始时间")
    end_date: Optional[datetime] = Field(None, description="结束时间，空表示长期有效")
    is_active: bool = Field(default=True)
    current_usage: int = Field(default=0, ge=0, description="已使用次数")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator('start_date', 'end_date')
    def normalize_dates(cls, v):
        return to_naive_local(v)

    @property
    def label(self) -> str:
        """展示用标识：有促销码用促销码，否则用名称"""
        return self.code or self.name

    def usage_limit_reached(self) -> bool:
        """检查总使用次数是否已达上限"""
        if not self.conditions or not self.conditions.max_usage_total:
            return False
        return self.current_usage >= self.conditions.max_usage_total

    def is_in_window(self, now: datetime) -> bool:
        """检查时间是否在有效期内"""
        if now < self.start_date:
            return False
        return self.end_date is None or now <= self.end_date

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """检查促销当前是否可用"""
        now = now or datetime.now()
        return self.is_active and self.is_in_window(now) and not self.usage_limit_reached()


class PromotionCreate(BaseModel):
    """创建促销模型"""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    type: PromotionType = Field(default=PromotionType.AUTOMATIC)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    scope: PromotionScope = Field(...)
    discount_type: DiscountType = Field(...)
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    product_ids: List[str] = Field(default_factory=list)
    category_slugs: List[str] = Field(default_factory=list)
    sub_category_slugs: List[str] = Field(default_factory=list)
    format_ids: List[str] = Field(default_factory=list)
    subscription_plan_ids: List[str] = Field(default_factory=list)
    variant_ids: List[str] = Field(default_factory=list)
    variant_skus: List[str] = Field(default_factory=list)
    application_strategy: ApplicationStrategy = Field(default=ApplicationStrategy.ALL)
    progressive_tiers: List[ProgressiveTier] = Field(default_factory=list)
    buy_x_get_y_config: Optional[BuyXGetYConfig] = None
    is_stackable: bool = False
    priority: int = Field(default=5, ge=0, le=100)
    conditions: Optional[PromotionCondition] = None
    start_date: datetime = Field(...)
    end_date: Optional[datetime] = None
    is_active: bool = True

    @validator('code', always=True)
    def validate_code(cls, v, values):
        """促销码类型必须提供促销码，统一转为大写"""
        if values.get('type') == PromotionType.CODE and not v:
            raise ValueError('Un code est requis pour une promotion de type "code"')
        return v.strip().upper() if v else v

    @validator('discount_value')
    def validate_discount_value(cls, v, values):
        """验证百分比折扣不超过100"""
        if values.get('discount_type') == DiscountType.PERCENTAGE and v > Decimal('100'):
            raise ValueError('百分比折扣值不能超过100')
        return v

    @validator('buy_x_get_y_config', always=True)
    def validate_buy_x_get_y_config(cls, v, values):
        """买X送Y范围必须提供配置"""
        if values.get('scope') == PromotionScope.BUY_X_GET_Y and v is None:
            raise ValueError('buy-x-get-y 促销必须提供 buy_x_get_y_config')
        return v

    @validator('start_date')
    def normalize_start_date(cls, v):
        return to_naive_local(v)

    @validator('end_date')
    def validate_validity_period(cls, v, values):
        """验证有效期，带时区的时间统一转换为本地时间"""
        v = to_naive_local(v)
        if v is not None and 'start_date' in values and v <= values['start_date']:
            raise ValueError('结束时间必须晚于开始时间')
        return v


class PromotionUpdate(BaseModel):
    """更新促销模型"""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    discount_value: Optional[Decimal] = Field(None, ge=0)
    product_ids: Optional[List[str]] = None
    category_slugs: Optional[List[str]] = None
    sub_category_slugs: Optional[List[str]] = None
    format_ids: Optional[List[str]] = None
    subscription_plan_ids: Optional[List[str]] = None
    variant_ids: Optional[List[str]] = None
    variant_skus: Optional[List[str]] = None
    application_strategy: Optional[ApplicationStrategy] = None
    progressive_tiers: Optional[List[ProgressiveTier]] = None
    buy_x_get_y_config: Optional[BuyXGetYConfig] = None
    is_stackable: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=0, le=100)
    conditions: Optional[PromotionCondition] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None

    @validator('code')
    def normalize_code(cls, v):
        return v.strip().upper() if v else v

    @validator('start_date', 'end_date')
    def normalize_dates(cls, v):
        return to_naive_local(v)


class PromotionValidation(BaseModel):
    """促销有效性校验结果"""

    valid: bool = Field(..., description="是否有效")
    promotion: Optional[Promotion] = None
    reason: Optional[str] = Field(None, description="无效原因")


class PromotionStats(BaseModel):
    """促销统计"""

    total: int = 0
    active: int = 0
    code_promos: int = 0
    automatic: int = 0
