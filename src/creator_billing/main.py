from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import logging

import uvicorn
from fastapi import FastAPI

from creator_billing import __version__
from creator_billing.core.config import Settings, get_settings
from creator_billing.core.factory import ServiceFactory
from creator_billing.core.interfaces import INotificationSender, IReconciliationStore
from creator_billing.core.middleware import setup_exception_handlers
from creator_billing.core.responses import success_response
from creator_billing.routers import stripe_router

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[IReconciliationStore] = None,
    notifier: Optional[INotificationSender] = None,
) -> FastAPI:
    """웹훅 서버 애플리케이션 생성

    STRIPE_WEBHOOK_SECRET이 없으면 Settings 검증 단계에서 기동이 실패한다.
    """
    settings = settings or get_settings()

    # 로깅 설정
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    ServiceFactory.configure_dependencies(settings, store=store, notifier=notifier)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Creator billing webhook server started (v%s)", __version__)
        yield
        logger.info("Creator billing webhook server stopped")

    app = FastAPI(
        title="Creator Billing Webhook Server",
        description="Stripe subscription webhook reconciliation",
        version=__version__,
        lifespan=lifespan,
        debug=settings.DEBUG
    )

    # 예외 처리 미들웨어 설정
    setup_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        return success_response(
            data={
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "version": __version__,
                "environment": "development" if settings.DEBUG else "production"
            },
            message="헬스 체크"
        )

    # 라우터 등록
    app.include_router(stripe_router.router)  # Stripe 웹훅 라우터

    return app


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "creator_billing.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG
    )
