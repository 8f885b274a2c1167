from fastapi import APIRouter, HTTPException
import logging

from app.core.config import settings
from app.core.database import database_service
from app.services.common_cache import promotion_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health():
    """数据库及缓存连接健康检查，Redis不可用时促销仍可计算"""
    health_status = {
        "postgresql": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    try:
        pg_status = await database_service.health_check()
        health_status["postgresql"] = pg_status["status"] == "healthy"
        health_status["details"]["postgresql"] = pg_status["message"]
        if "promotions" in pg_status:
            health_status["details"]["promotions"] = pg_status["promotions"]

        if promotion_cache.enabled:
            health_status["redis"] = await promotion_cache.ping()
            health_status["details"]["redis"] = "连接正常" if health_status["redis"] else "连接失败"
        else:
            health_status["details"]["redis"] = "缓存未启用"

        health_status["overall"] = health_status["postgresql"]

        if not health_status["overall"]:
            logger.warning("数据库连接检查失败", extra={"status": health_status})
            return health_status

        logger.info("数据库连接检查通过")
        return health_status

    except Exception as e:
        logger.error(f"数据库健康检查异常: {str(e)}")
        raise HTTPException(
            status_code=503,
            detail={
                "error": "数据库连接失败",
                "message": str(e),
                "status": health_status
            }
        )
