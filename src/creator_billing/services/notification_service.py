"""이메일 알림 발송 서비스 (SendGrid)"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from creator_billing.core.interfaces import INotificationSender

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailNotificationSender(INotificationSender):
    """SendGrid v3 API로 메일 발송. API 키가 없으면 로그만 남김"""

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        from_name: str,
        *,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = (api_key or "").strip() or None
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        if not self.api_key:
            logger.info("[EMAIL] SENDGRID_API_KEY not configured; skipped '%s' to %s", subject, to)
            return

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [
                {"type": "text/plain", "value": text},
                {"type": "text/html", "value": html},
            ],
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                SENDGRID_SEND_URL,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            response.raise_for_status()

        logger.info("[EMAIL] sent '%s' to %s (message_id=%s)", subject, to, response.headers.get("X-Message-Id"))
