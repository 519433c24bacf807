"""
서비스 인터페이스 정의
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple


class IReconciliationStore(ABC):
    """웹훅 정산 저장소 인터페이스

    카운터 변경은 모두 저장소 수준의 원자적 증감으로 처리해야 하며,
    구독 생성/취소와 카운터 변경은 같은 트랜잭션에 묶여야 한다.
    """

    @abstractmethod
    async def find_subscription_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        """Stripe 구독 ID로 구독 조회"""
        pass

    @abstractmethod
    async def reconcile_checkout(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """외부 구독 ID 기준으로 없을 때만 생성하고 티어/아티스트 구독자 수를 +1.

        생성과 카운터 증가는 하나의 트랜잭션. (레코드, 생성 여부) 반환
        """
        pass

    @abstractmethod
    async def update_subscription(self, subscription_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """구독 필드 갱신"""
        pass

    @abstractmethod
    async def reconcile_cancellation(self, subscription_id: str, canceled_at: datetime) -> Optional[Dict[str, Any]]:
        """CANCELED가 아닌 구독만 CANCELED로 전환하고 구독자 수를 -1 (하나의 트랜잭션).

        이미 취소된 경우 아무것도 바꾸지 않고 None
        """
        pass

    @abstractmethod
    async def add_artist_earnings(self, artist_id: str, amount: Decimal) -> None:
        """아티스트 누적 수익 원자적 증가"""
        pass

    @abstractmethod
    async def create_payment_failure(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """결제 실패 이력 추가"""
        pass

    @abstractmethod
    async def get_notification_context(
        self,
        fan_id: Optional[str],
        artist_id: Optional[str],
        tier_id: Optional[str],
    ) -> Dict[str, Any]:
        """알림 발송용 팬/아티스트/티어 표시 정보 조회"""
        pass

    @abstractmethod
    async def claim_webhook_event(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        processed_since: datetime,
        claim_stale_before: datetime,
    ) -> bool:
        """이벤트 처리권을 원자적으로 선점 ('processing' 행 기록). 선점 성공 시 True.

        processed_since 이후 완료된 이벤트와 claim_stale_before 이후 선점된 이벤트는 선점할 수 없다.
        """
        pass

    @abstractmethod
    async def record_webhook_event(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """처리 완료 이벤트 기록 (선점 행을 완료 상태로 덮어씀)"""
        pass

    @abstractmethod
    async def release_webhook_event(self, provider: str, event_id: str) -> None:
        """선점 해제 - 재전송 시 다시 처리될 수 있도록 'processing' 행 삭제"""
        pass


class INotificationSender(ABC):
    """알림 발송 인터페이스 (fire-and-forget)"""

    @abstractmethod
    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        """템플릿 메시지 발송"""
        pass
