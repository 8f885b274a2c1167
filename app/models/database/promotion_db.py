"""
促销数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from app.core.database import Base


class PromotionDB(Base):
    """促销规则数据库表"""

    __tablename__ = "promotions"

    # 主键和基本信息
    id = Column(String(50), primary_key=True, comment="促销ID")
    name = Column(String(255), nullable=False, comment="促销名称")
    description = Column(Text, comment="促销描述")
    type = Column(String(20), nullable=False, default="automatic", index=True, comment="促销类型")
    code = Column(String(50), unique=True, index=True, comment="促销码")
    scope = Column(String(30), nullable=False, comment="作用范围")

    # 折扣信息
    discount_type = Column(String(20), nullable=False, comment="折扣计算类型")
    discount_value = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣值")

    # 目标列表（按作用范围使用）
    product_ids = Column(JSON, comment="商品ID列表")
    category_slugs = Column(JSON, comment="分类slug列表")
    sub_category_slugs = Column(JSON, comment="子分类slug列表")
    format_ids = Column(JSON, comment="规格尺寸ID列表")
    subscription_plan_ids = Column(JSON, comment="订阅计划ID列表")
    variant_ids = Column(JSON, comment="商品规格ID列表")
    variant_skus = Column(JSON, comment="商品规格SKU列表")

    # 高级策略
    application_strategy = Column(String(20), default="all", comment="折扣分配策略")
    progressive_tiers = Column(JSON, comment="阶梯折扣配置")
    buy_x_get_y_config = Column(JSON, comment="买X送Y配置")

    # 叠加和优先级
    is_stackable = Column(Boolean, default=False, comment="是否可叠加")
    priority = Column(Integer, default=5, index=True, comment="优先级")

    # 使用条件
    conditions = Column(JSON, comment="使用条件")

    # 有效期
    start_date = Column(DateTime, nullable=False, index=True, comment="开始时间")
    end_date = Column(DateTime, index=True, comment="结束时间")

    # 状态和统计
    is_active = Column(Boolean, default=True, index=True, comment="是否启用")
    current_usage = Column(Integer, default=0, nullable=False, comment="已使用次数")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        {'comment': '促销规则表'}
    )


class PromotionUsageDB(Base):
    """促销使用记录表"""

    __tablename__ = "promotion_usages"

    usage_id = Column(String(50), primary_key=True, comment="使用记录ID")
    promotion_id = Column(String(50), nullable=False, index=True, comment="促销ID")
    user_id = Column(String(50), index=True, comment="使用用户ID，游客为空")
    order_id = Column(String(50), comment="关联订单ID")
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣金额")
    used_at = Column(DateTime, server_default=func.now(), comment="使用时间")

    __table_args__ = (
        {'comment': '促销使用记录表'}
    )
