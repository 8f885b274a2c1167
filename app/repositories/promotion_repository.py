"""
促销数据库操作层
"""

import uuid
from enum import Enum
from typing import List, Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from pydantic_core import to_jsonable_python
from sqlalchemy import select, update, delete, and_, or_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import Promotion, PromotionStats
from app.models.database.promotion_db import PromotionDB, PromotionUsageDB

# 以JSON存储的字段
JSON_FIELDS = (
    "product_ids",
    "category_slugs",
    "sub_category_slugs",
    "format_ids",
    "subscription_plan_ids",
    "variant_ids",
    "variant_skus",
    "progressive_tiers",
    "buy_x_get_y_config",
    "conditions",
)


class PromotionRepository:
    """促销数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, promotion_id: str) -> Optional[PromotionDB]:
        """根据ID获取促销"""
        result = await self.db.execute(
            select(PromotionDB).where(PromotionDB.id == promotion_id)
        )
        return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Optional[PromotionDB]:
        """根据促销码获取已启用的促销码类型促销"""
        result = await self.db.execute(
            select(PromotionDB).where(
                and_(
                    PromotionDB.code == code.strip().upper(),
                    PromotionDB.type == "code",
                    PromotionDB.is_active.is_(True)
                )
            )
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str, exclude_id: Optional[str] = None) -> bool:
        """检查促销码是否已被占用"""
        query = select(func.count(PromotionDB.id)).where(PromotionDB.code == code.strip().upper())
        if exclude_id:
            query = query.where(PromotionDB.id != exclude_id)
        result = await self.db.execute(query)
        return (result.scalar() or 0) > 0

    async def get_all(self, limit: int = 100, offset: int = 0) -> List[PromotionDB]:
        """获取全部促销，按优先级和创建时间倒序"""
        query = select(PromotionDB).order_by(
            desc(PromotionDB.priority),
            desc(PromotionDB.created_at)
        ).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_active_promotions(
        self,
        current_time: Optional[datetime] = None
    ) -> List[PromotionDB]:
        """获取当前有效期内已启用的促销"""
        if current_time is None:
            current_time = datetime.now()

        query = select(PromotionDB).where(
            and_(
                PromotionDB.is_active.is_(True),
                PromotionDB.start_date <= current_time,
                or_(
                    PromotionDB.end_date.is_(None),
                    PromotionDB.end_date >= current_time
                )
            )
        ).order_by(desc(PromotionDB.priority), desc(PromotionDB.created_at))

        result = await self.db.execute(query)
        return result.scalars().all()

    async def create(self, data: Dict[str, Any]) -> PromotionDB:
        """创建促销"""
        values = self._to_columns(data)
        values.setdefault("id", str(uuid.uuid4()))
        values["current_usage"] = 0

        db_promotion = PromotionDB(**values)
        self.db.add(db_promotion)
        await self.db.flush()
        await self.db.refresh(db_promotion)
        return db_promotion

    async def update(self, promotion_id: str, data: Dict[str, Any]) -> Optional[PromotionDB]:
        """更新促销"""
        db_promotion = await self.get_by_id(promotion_id)
        if not db_promotion:
            return None

        for key, value in self._to_columns(data).items():
            setattr(db_promotion, key, value)
        db_promotion.updated_at = datetime.now()

        await self.db.flush()
        await self.db.refresh(db_promotion)
        return db_promotion

    async def delete(self, promotion_id: str) -> bool:
        """删除促销"""
        result = await self.db.execute(
            delete(PromotionDB).where(PromotionDB.id == promotion_id)
        )
        return result.rowcount > 0

    async def increment_usage(
        self,
        promotion_id: str,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
        discount_amount: Decimal = Decimal("0")
    ) -> bool:
        """
        原子地增加使用次数并记录使用

        有总次数上限时用条件UPDATE防止并发超发，影响0行即视为已达上限
        """
        db_promotion = await self.get_by_id(promotion_id)
        if not db_promotion:
            return False

        max_usage_total = (db_promotion.conditions or {}).get("max_usage_total")

        stmt = update(PromotionDB).where(PromotionDB.id == promotion_id)
        if max_usage_total:
            stmt = stmt.where(PromotionDB.current_usage < max_usage_total)
        stmt = stmt.values(
            current_usage=PromotionDB.current_usage + 1,
            updated_at=datetime.now()
        ).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            return False

        self.db.add(PromotionUsageDB(
            usage_id=str(uuid.uuid4()),
            promotion_id=promotion_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=datetime.now()
        ))
        await self.db.flush()
        return True

    async def get_user_usage_count(self, user_id: str, promotion_id: str) -> int:
        """获取用户对特定促销的使用次数"""
        result = await self.db.execute(
            select(func.count(PromotionUsageDB.usage_id)).where(
                and_(
                    PromotionUsageDB.user_id == user_id,
                    PromotionUsageDB.promotion_id == promotion_id
                )
            )
        )
        return result.scalar() or 0

    async def get_user_usage_counts(self, user_id: str) -> Dict[str, int]:
        """获取用户对各促销的使用次数"""
        result = await self.db.execute(
            select(
                PromotionUsageDB.promotion_id,
                func.count(PromotionUsageDB.usage_id).label("used_count")
            ).where(PromotionUsageDB.user_id == user_id).group_by(PromotionUsageDB.promotion_id)
        )
        return {row.promotion_id: row.used_count for row in result.fetchall()}

    async def get_stats(self, current_time: Optional[datetime] = None) -> PromotionStats:
        """获取促销统计信息"""
        result = await self.db.execute(
            select(PromotionDB.type, func.count(PromotionDB.id)).group_by(PromotionDB.type)
        )
        by_type = {row[0]: row[1] for row in result.fetchall()}
        active = await self.get_active_promotions(current_time)

        return PromotionStats(
            total=sum(by_type.values()),
            active=len(active),
            code_promos=by_type.get("code", 0),
            automatic=by_type.get("automatic", 0)
        )

    @staticmethod
    def _to_columns(data: Dict[str, Any]) -> Dict[str, Any]:
        """转换为可写入数据库的列值"""
        values = {}
        for key, value in data.items():
            if key in JSON_FIELDS:
                values[key] = to_jsonable_python(value) if value is not None else None
            elif isinstance(value, Enum):
                values[key] = value.value
            else:
                values[key] = value
        return values

    def to_model(self, db_promotion: PromotionDB) -> Promotion:
        """转换为Pydantic模型"""
        return Promotion(
            id=db_promotion.id,
            name=db_promotion.name,
            description=db_promotion.description,
            type=db_promotion.type,
            code=db_promotion.code,
            scope=db_promotion.scope,
            discount_type=db_promotion.discount_type,
            discount_value=db_promotion.discount_value if db_promotion.discount_value is not None else Decimal("0"),
            product_ids=db_promotion.product_ids or [],
            category_slugs=db_promotion.category_slugs or [],
            sub_category_slugs=db_promotion.sub_category_slugs or [],
            format_ids=db_promotion.format_ids or [],
            subscription_plan_ids=db_promotion.subscription_plan_ids or [],
            variant_ids=db_promotion.variant_ids or [],
            variant_skus=db_promotion.variant_skus or [],
            application_strategy=db_promotion.application_strategy or "all",
            progressive_tiers=db_promotion.progressive_tiers or [],
            buy_x_get_y_config=db_promotion.buy_x_get_y_config,
            is_stackable=bool(db_promotion.is_stackable),
            priority=db_promotion.priority if db_promotion.priority is not None else 5,
            conditions=db_promotion.conditions,
            start_date=db_promotion.start_date,
            end_date=db_promotion.end_date,
            is_active=bool(db_promotion.is_active),
            current_usage=db_promotion.current_usage or 0,
            created_at=db_promotion.created_at or datetime.now(),
            updated_at=db_promotion.updated_at or datetime.now()
        )
