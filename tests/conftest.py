"""
测试配置文件 - pytest fixtures和共用配置
"""

import pytest
import pytest_asyncio
from datetime import datetime
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.database import PromotionDB, PromotionUsageDB  # noqa: F401
from app.models.cart import CartItemSnapshot
from app.models.promotion import Promotion, PromotionScope, DiscountType
from app.services.promotion_engine import PromotionEngine


# 计算引擎统一使用固定时间
FIXED_NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def engine():
    """使用固定时钟的促销引擎"""
    return PromotionEngine(clock=lambda: FIXED_NOW)


@pytest.fixture
def make_promotion():
    """促销工厂 - 默认为全站9折自动促销"""
    def _make(**overrides):
        data = {
            "id": "promo_001",
            "name": "Soldes d'été",
            "scope": PromotionScope.SITE_WIDE,
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "start_date": datetime(2025, 1, 1),
        }
        data.update(overrides)
        return Promotion(**data)

    return _make


@pytest.fixture
def make_item():
    """购物车商品工厂"""
    def _make(product_id: str, unit_price, quantity: int = 1, **extra):
        return CartItemSnapshot(
            product_id=product_id,
            unit_price=Decimal(str(unit_price)),
            quantity=quantity,
            **extra
        )

    return _make


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 使用内存SQLite"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    async_session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
