"""
批量价格计算模型
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class VariantPriceInput(BaseModel):
    """规格价格输入"""

    variant_id: str = Field(..., description="规格ID")
    sku: str = Field(..., description="规格SKU")
    original_price: Decimal = Field(..., ge=0, description="原价")
    quantity: int = Field(default=1, ge=1, description="数量")


class ProductPriceInput(BaseModel):
    """商品价格输入"""

    product_id: str = Field(..., description="商品ID")
    original_price: Optional[Decimal] = Field(None, ge=0, description="原价（无规格时）")
    quantity: int = Field(default=1, ge=1)
    variants: List[VariantPriceInput] = Field(default_factory=list)


class CalculatePricesRequest(BaseModel):
    """批量价格计算请求"""

    products: List[ProductPriceInput] = Field(default_factory=list)
    promo_code: Optional[str] = None
    user_id: Optional[str] = None


class VariantPriceOutput(BaseModel):
    """规格价格输出"""

    variant_id: str
    sku: str
    original_price: Decimal
    reduced_price: Decimal
    saved: Decimal = Decimal("0")
    discount_percentage: int = 0
    has_promotion: bool = False
    applied_promo_codes: List[str] = Field(default_factory=list)


class ProductPriceOutput(BaseModel):
    """商品价格输出"""

    product_id: str
    original_price: Optional[Decimal] = None
    reduced_price: Optional[Decimal] = None
    has_promotion: bool = False
    variants: List[VariantPriceOutput] = Field(default_factory=list)


class CalculatePricesResponse(BaseModel):
    """批量价格计算结果"""

    products: List[ProductPriceOutput] = Field(default_factory=list)
    total_saved: Decimal = Decimal("0")
    applied_promo_codes: List[str] = Field(default_factory=list)
