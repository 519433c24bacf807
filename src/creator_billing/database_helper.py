"""
Supabase 기반 정산 저장소

Reconciliation reads and writes propagate client errors so that an unavailable
database surfaces as a failed delivery. Event claims propagate too; only
completing or releasing a claim degrades gracefully.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
import logging

from supabase import Client

from creator_billing.core.interfaces import IReconciliationStore

logger = logging.getLogger(__name__)


def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    """Decimal/datetime 값을 PostgREST 전송 형식으로 변환"""
    serialized: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Decimal):
            serialized[key] = str(value)
        elif isinstance(value, datetime):
            serialized[key] = value.isoformat()
        else:
            serialized[key] = value
    return serialized


def _first(rows: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


class DatabaseHelper(IReconciliationStore):
    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # Subscriptions
    async def find_subscription_by_external_id(self, external_id: str) -> Optional[Dict[str, Any]]:
        result = (
            self.supabase.table('subscriptions')
            .select('*')
            .eq('stripe_subscription_id', external_id)
            .limit(1)
            .execute()
        )
        return _first(result.data)

    async def reconcile_checkout(self, data: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """구독 insert-or-ignore와 카운터 증가를 reconcile_checkout 함수 한 번으로 처리"""
        params = {f'p_{key}': value for key, value in _serialize(data).items()}
        result = self.supabase.rpc('reconcile_checkout', params).execute()
        payload = result.data or {}
        subscription = payload.get('subscription')
        if not subscription:
            raise RuntimeError(
                f"reconcile_checkout returned no row for {data['stripe_subscription_id']}"
            )
        return subscription, bool(payload.get('created'))

    async def update_subscription(self, subscription_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        update_data = _serialize(data)
        update_data['updated_at'] = self._now_iso()
        result = self.supabase.table('subscriptions').update(update_data).eq('id', subscription_id).execute()
        return _first(result.data)

    async def reconcile_cancellation(self, subscription_id: str, canceled_at: datetime) -> Optional[Dict[str, Any]]:
        """조건부 취소와 카운터 감소를 reconcile_cancellation 함수 한 번으로 처리"""
        result = self.supabase.rpc(
            'reconcile_cancellation',
            {'p_subscription_id': subscription_id, 'p_canceled_at': canceled_at.isoformat()},
        ).execute()
        return result.data or None

    async def add_artist_earnings(self, artist_id: str, amount: Decimal) -> None:
        self.supabase.rpc('add_artist_earnings', {'p_artist_id': artist_id, 'p_amount': str(amount)}).execute()

    # Payment failures
    async def create_payment_failure(self, data: Dict[str, Any]) -> Dict[str, Any]:
        row = _serialize(data)
        row['updated_at'] = self._now_iso()
        result = self.supabase.table('payment_failures').insert(row).execute()
        return _first(result.data) or {}

    async def get_notification_context(
        self,
        fan_id: Optional[str],
        artist_id: Optional[str],
        tier_id: Optional[str],
    ) -> Dict[str, Any]:
        """알림용 표시 정보 조회"""
        context: Dict[str, Any] = {}
        user_ids = [user_id for user_id in (fan_id, artist_id) if user_id]
        if user_ids:
            result = (
                self.supabase.table('users')
                .select('id, email, display_name')
                .in_('id', user_ids)
                .execute()
            )
            users = {row['id']: row for row in result.data or []}
            fan = users.get(fan_id) or {}
            artist = users.get(artist_id) or {}
            context.update({
                'fan_email': fan.get('email'),
                'fan_name': fan.get('display_name'),
                'artist_email': artist.get('email'),
                'artist_name': artist.get('display_name'),
            })
        if tier_id:
            result = self.supabase.table('tiers').select('name').eq('id', tier_id).limit(1).execute()
            tier = _first(result.data) or {}
            context['tier_name'] = tier.get('name')
        return context

    # Processed-event ledger
    async def claim_webhook_event(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        processed_since: datetime,
        claim_stale_before: datetime,
    ) -> bool:
        """claim_webhook_event 함수로 선점. 조회 실패는 전파되어 재전송을 유도"""
        result = self.supabase.rpc(
            'claim_webhook_event',
            {
                'p_provider': provider,
                'p_event_id': event_id,
                'p_event_type': event_type,
                'p_processed_since': processed_since.isoformat(),
                'p_claim_stale_before': claim_stale_before.isoformat(),
            },
        ).execute()
        return result.data is True

    async def record_webhook_event(
        self,
        provider: str,
        event_id: str,
        event_type: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> bool:
        try:
            self.supabase.table('processed_webhook_events').upsert(
                {
                    'provider': provider,
                    'event_id': event_id,
                    'event_type': event_type,
                    'status': status,
                    'payload': payload or {},
                    'processed_at': self._now_iso(),
                },
                on_conflict='provider,event_id',
            ).execute()
            return True
        except Exception as e:
            logger.error(f"웹훅 이벤트 기록 실패: {e}")
            return False

    async def release_webhook_event(self, provider: str, event_id: str) -> None:
        try:
            (
                self.supabase.table('processed_webhook_events')
                .delete()
                .eq('provider', provider)
                .eq('event_id', event_id)
                .eq('status', 'processing')
                .execute()
            )
        except Exception as e:
            logger.error(f"웹훅 이벤트 선점 해제 실패: {e}")
