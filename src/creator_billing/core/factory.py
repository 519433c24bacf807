"""
서비스 팩토리 - 의존성 주입 설정
"""
import logging
from typing import Optional

from supabase import create_client

from creator_billing.core.config import Settings
from creator_billing.core.interfaces import INotificationSender, IReconciliationStore
from creator_billing.database_helper import DatabaseHelper
from creator_billing.routers import stripe_router
from creator_billing.services.event_dispatcher import EventDispatcher
from creator_billing.services.notification_service import EmailNotificationSender
from creator_billing.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class ServiceFactory:
    """서비스 의존성 생성 및 라우터 연결"""

    @staticmethod
    def create_store(settings: Settings) -> IReconciliationStore:
        """Supabase service role 클라이언트로 저장소 생성"""
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise RuntimeError("SUPABASE_URL과 SUPABASE_SERVICE_ROLE_KEY가 설정되어야 합니다")
        supabase_admin = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        return DatabaseHelper(supabase_admin)

    @staticmethod
    def create_notifier(settings: Settings) -> INotificationSender:
        if not settings.SENDGRID_API_KEY:
            logger.warning("[EMAIL] SENDGRID_API_KEY가 설정되지 않아 알림은 로그로만 남습니다.")
        return EmailNotificationSender(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.EMAIL_FROM_ADDRESS,
            from_name=settings.EMAIL_FROM_NAME,
        )

    @staticmethod
    def configure_dependencies(
        settings: Settings,
        *,
        store: Optional[IReconciliationStore] = None,
        notifier: Optional[INotificationSender] = None,
    ) -> EventDispatcher:
        """정산 서비스와 디스패처를 구성하고 웹훅 라우터에 주입"""
        store = store if store is not None else ServiceFactory.create_store(settings)
        notifier = notifier if notifier is not None else ServiceFactory.create_notifier(settings)

        reconciliation = ReconciliationService(store, notifier, app_base_url=settings.APP_BASE_URL)
        dispatcher = EventDispatcher(
            reconciliation,
            store,
            retention_hours=settings.WEBHOOK_EVENT_RETENTION_HOURS,
            claim_timeout_seconds=settings.WEBHOOK_CLAIM_TIMEOUT_SECONDS,
        )
        stripe_router.set_dependencies(
            dispatcher,
            settings.STRIPE_WEBHOOK_SECRET,
            settings.STRIPE_SIGNATURE_TOLERANCE_SECONDS,
        )
        logger.info("서비스 의존성 설정 완료")
        return dispatcher
