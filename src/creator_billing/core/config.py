"""
애플리케이션 설정 관리
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_FILE_PATH = Path(__file__).resolve()


def _collect_env_files(file_path: Path) -> tuple[Path, ...]:
    """환경 파일 후보를 가까운 디렉터리부터 수집"""

    collected: list[Path] = []
    seen: set[Path] = set()

    for directory in file_path.parents:
        for name in (".env", ".env.local"):
            candidate = directory / name
            if candidate.exists() and candidate not in seen:
                collected.append(candidate)
                seen.add(candidate)

    return tuple(collected)


_ENV_FILES = _collect_env_files(_FILE_PATH)


def load_env_files() -> None:
    """프로젝트 전체에서 활용할 .env 파일들을 순차적으로 로드"""

    for dotenv_path in _ENV_FILES:
        load_dotenv(dotenv_path, override=False)


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=tuple(str(path) for path in _ENV_FILES) if _ENV_FILES else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # 서버 설정
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    APP_BASE_URL: str = "http://localhost:3000"

    # 로깅 설정
    LOG_LEVEL: str = "INFO"

    # Stripe 웹훅 설정 (시크릿이 없으면 기동 자체가 실패해야 함)
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_SIGNATURE_TOLERANCE_SECONDS: int = 300
    # 처리 완료 이벤트 보관 기간 (Stripe 재시도 기간 3일 기준)
    WEBHOOK_EVENT_RETENTION_HOURS: int = 72
    # 처리 중 선점이 만료되어 재전송이 다시 선점할 수 있기까지의 시간
    WEBHOOK_CLAIM_TIMEOUT_SECONDS: int = 300

    # Supabase 설정
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # 이메일 설정
    SENDGRID_API_KEY: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "noreply@creatorbilling.app"
    EMAIL_FROM_NAME: str = "Creator Billing"

    @field_validator("STRIPE_WEBHOOK_SECRET")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("STRIPE_WEBHOOK_SECRET은 필수입니다")
        return v.strip()

    @field_validator("WEBHOOK_EVENT_RETENTION_HOURS", "WEBHOOK_CLAIM_TIMEOUT_SECONDS", "STRIPE_SIGNATURE_TOLERANCE_SECONDS")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("0보다 큰 값이어야 합니다")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    @field_validator("APP_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """캐시된 설정 인스턴스 반환"""
    load_env_files()
    return Settings()
