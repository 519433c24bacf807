"""
전역 예외 처리 미들웨어
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

from creator_billing.core.responses import BusinessException

logger = logging.getLogger(__name__)

WEBHOOK_FAILURE_MESSAGE = "Webhook handler failed"


async def business_exception_handler(request: Request, exc: BusinessException):
    """비즈니스 예외 처리기 (서명 검증 실패 포함)"""
    logger.warning("Business exception on %s: %s (%s)", request.url.path, exc.message, exc.error_code)

    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_exception_handler_custom(request: Request, exc: HTTPException):
    """HTTP 예외 처리기"""
    logger.warning("HTTP exception on %s: %s", request.url.path, exc.detail)

    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def general_exception_handler(request: Request, exc: Exception):
    """일반 예외 처리기"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)

    return JSONResponse(status_code=500, content={"error": WEBHOOK_FAILURE_MESSAGE})


def setup_exception_handlers(app):
    """예외 처리기 설정"""
    app.add_exception_handler(BusinessException, business_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler_custom)
    app.add_exception_handler(Exception, general_exception_handler)
