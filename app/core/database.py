from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()

# 全局数据库引擎和会话工厂，由 init_database() 设置
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[sessionmaker] = None


def _engine_options(url: str) -> dict:
    """按数据库类型生成引擎参数；SQLite不支持连接池回收参数"""
    options = {"echo": settings.debug}
    if url.startswith("sqlite"):
        return options

    options.update(pool_pre_ping=True, pool_recycle=3600)
    if settings.is_testing:
        options["poolclass"] = NullPool
    return options


async def init_database(url: Optional[str] = None) -> None:
    """初始化数据库连接"""
    global engine, async_session_maker

    url = url or settings.database_url_computed
    try:
        engine = create_async_engine(url, **_engine_options(url))
        async_session_maker = sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        logger.info(f"数据库连接初始化成功 ({engine.url.drivername})")

    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def create_tables() -> None:
    """根据模型创建促销数据表"""
    # 导入模型以注册到Base.metadata
    from app.models.database import PromotionDB, PromotionUsageDB  # noqa: F401

    if not engine:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("促销数据表创建完成")


async def close_database() -> None:
    """关闭数据库连接"""
    global engine, async_session_maker

    if engine:
        await engine.dispose()
        engine = None
        async_session_maker = None
        logger.info("数据库连接已关闭")


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """事务范围：正常退出提交，异常回滚"""
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI依赖：每个请求一个事务"""
    async with session_scope() as session:
        yield session


class DatabaseService:
    """数据库健康检查"""

    @property
    def engine(self) -> Optional[AsyncEngine]:
        return engine

    async def health_check(self) -> dict:
        """检查连接，并统计促销表记录数"""
        if not self.engine:
            return {"status": "error", "message": "数据库引擎未初始化"}

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                promotions = await conn.scalar(text("SELECT COUNT(*) FROM promotions"))
                usages = await conn.scalar(text("SELECT COUNT(*) FROM promotion_usages"))

            return {
                "status": "healthy",
                "message": "数据库连接正常",
                "promotions": promotions,
                "promotion_usages": usages
            }

        except Exception as e:
            logger.error(f"数据库健康检查失败: {e}")
            return {
                "status": "error",
                "message": f"数据库连接失败: {str(e)}"
            }


database_service = DatabaseService()
