"""
促销数据库表初始化脚本

运行方式:
python -m app.scripts.init_promotion_tables
python -m app.scripts.init_promotion_tables --check
"""

import asyncio
import logging
import sys
from sqlalchemy import text

from app.core.database import init_database, close_database, create_tables

logger = logging.getLogger(__name__)

PROMOTION_TABLES = ["promotion_usages", "promotions"]


async def create_promotion_tables():
    """创建促销相关数据表"""
    try:
        await init_database()

        logger.info("开始创建促销数据表...")
        await create_tables()

        from app.core.database import engine as db_engine

        async with db_engine.begin() as conn:
            await _create_additional_constraints(conn)

        logger.info("促销数据库初始化完成")

    except Exception as e:
        logger.error(f"创建促销数据表失败: {e}")
        raise
    finally:
        await close_database()


async def _create_additional_constraints(conn):
    """创建检查约束，与Pydantic模型的校验保持一致"""
    constraints_sql = [
        """
        ALTER TABLE promotions
        ADD CONSTRAINT chk_discount_value
        CHECK (discount_value >= 0)
        """,
        """
        ALTER TABLE promotions
        ADD CONSTRAINT chk_percentage_value
        CHECK (discount_type <> 'percentage' OR discount_value <= 100)
        """,
        """
        ALTER TABLE promotions
        ADD CONSTRAINT chk_current_usage
        CHECK (current_usage >= 0)
        """,
        """
        ALTER TABLE promotions
        ADD CONSTRAINT chk_validity_period
        CHECK (end_date IS NULL OR end_date > start_date)
        """,
    ]

    for constraint_sql in constraints_sql:
        try:
            await conn.execute(text(constraint_sql))
            logger.info("约束创建成功")
        except Exception as e:
            if "already exists" in str(e).lower():
                logger.info("约束已存在，跳过")
            else:
                raise


async def check_tables_exist() -> bool:
    """检查表是否存在"""
    try:
        await init_database()

        from app.core.database import engine as db_engine

        async with db_engine.begin() as conn:
            result = await conn.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'public' AND table_name = ANY(:names)"
                ),
                {"names": PROMOTION_TABLES}
            )
            tables = [row[0] for row in result.fetchall()]

        missing_tables = set(PROMOTION_TABLES) - set(tables)
        if missing_tables:
            logger.warning(f"缺少表: {missing_tables}")
            return False

        logger.info("所有促销表都存在")
        return True

    finally:
        await close_database()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if "--check" in sys.argv:
        sys.exit(0 if asyncio.run(check_tables_exist()) else 1)

    asyncio.run(create_promotion_tables())
