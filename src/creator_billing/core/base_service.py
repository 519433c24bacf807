"""
서비스 기본 클래스
"""
import logging
from typing import Any, Dict, List, Optional

from creator_billing.core.interfaces import INotificationSender, IReconciliationStore


class BaseService:
    """모든 서비스의 기본 클래스"""

    def __init__(self, store: IReconciliationStore, notifier: Optional[INotificationSender] = None):
        self.store = store
        self.notifier = notifier
        self.logger = logging.getLogger(self.__class__.__name__)

    async def send_best_effort(self, message: Optional[Dict[str, str]], *, reason: str) -> bool:
        """알림 발송 - 실패해도 예외를 전파하지 않음"""
        if not message or not self.notifier:
            return False
        if not message.get("to"):
            self.logger.info("[STRIPE] %s notification skipped: no recipient", reason)
            return False
        try:
            await self.notifier.send(
                to=message["to"],
                subject=message["subject"],
                html=message["html"],
                text=message["text"],
            )
            return True
        except Exception as e:
            self.logger.warning("[STRIPE] %s notification failed: %s", reason, e)
            return False

    @staticmethod
    def missing_fields(data: Dict[str, Any], required_fields: List[str]) -> List[str]:
        """누락된 필수 필드 목록"""
        return [field for field in required_fields if data.get(field) in (None, "")]
