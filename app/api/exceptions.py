"""
业务异常定义和FastAPI异常处理器
促销计算本身不抛业务异常，这里只覆盖后台管理操作
"""

import logging
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class BusinessException(Exception):
    """业务异常基类"""

    status_code = 400
    error_code = "BUSINESS_ERROR"

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code


class PromotionNotFoundException(BusinessException):
    status_code = 404
    error_code = "PROMOTION_NOT_FOUND"

    def __init__(self, promotion_id: str):
        super().__init__(f"Promotion avec l'ID {promotion_id} introuvable")
        self.promotion_id = promotion_id


class PromotionConflictException(BusinessException):
    status_code = 409
    error_code = "PROMOTION_CODE_CONFLICT"

    def __init__(self, code: str):
        super().__init__(f'Le code promo "{code}" existe déjà')
        self.code = code


class InvalidPromotionException(BusinessException):
    status_code = 400
    error_code = "INVALID_PROMOTION"


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常处理"""
    logger.warning(f"业务异常 {exc.error_code}: {exc.message} ({request.url.path})")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message}
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验异常处理"""
    return JSONResponse(
        status_code=422,
        content={"error": "VALIDATION_ERROR", "message": "请求参数校验失败", "details": jsonable_encoder(exc.errors())}
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常处理"""
    logger.error(f"数据库异常 ({request.url.path}): {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "DATABASE_ERROR", "message": "数据库操作失败"}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未处理异常兜底"""
    logger.exception(f"未处理异常 ({request.url.path}): {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": "服务器内部错误"}
    )
