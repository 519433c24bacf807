"""
공통 응답 모델 및 예외 클래스
"""
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """표준 API 응답 모델"""
    status: str  # "success" or "error"
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "data": {"ok": True},
                "message": "stripe webhook alive",
            }
        }
    )


# 커스텀 예외 클래스들
class BusinessException(Exception):
    """비즈니스 로직 예외"""
    def __init__(self, message: str, error_code: str = None, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class WebhookVerificationException(BusinessException):
    """웹훅 검증 실패 - 핸들러 호출 전에 요청을 거절"""
    def __init__(self, message: str, error_code: str = "WEBHOOK_VERIFICATION_FAILED"):
        super().__init__(message, error_code, 400)


class MissingSignatureException(WebhookVerificationException):
    """서명 헤더 누락"""
    def __init__(self, message: str = "Missing signature"):
        super().__init__(message, "MISSING_SIGNATURE")


class InvalidSignatureException(WebhookVerificationException):
    """서명 불일치 또는 만료된 타임스탬프"""
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, "INVALID_SIGNATURE")


class MalformedPayloadException(WebhookVerificationException):
    """JSON 파싱 실패 또는 이벤트 구조 누락"""
    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, "MALFORMED_PAYLOAD")


class ReconciliationException(BusinessException):
    """예상 가능한 핸들러 실패 - 디스패처에서 수신 확인으로 변환됨"""
    def __init__(self, message: str, error_code: str = "RECONCILIATION_SKIPPED"):
        super().__init__(message, error_code, 422)


# 응답 헬퍼 함수들
def success_response(data: Any = None, message: str = "성공") -> APIResponse:
    """성공 응답 생성"""
    return APIResponse(status="success", data=data, message=message)
