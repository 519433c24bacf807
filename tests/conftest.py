"""공용 pytest 픽스처"""
import pytest

from creator_billing.core.config import Settings

from stubs import ARTIST_ID, FAN_ID, TEST_WEBHOOK_SECRET, TIER_ID, InMemoryStore, RecordingNotifier


@pytest.fixture
def users():
    return {
        FAN_ID: {"email": "fan@example.com", "display_name": "Fan One"},
        ARTIST_ID: {"email": "artist@example.com", "display_name": "Artist One"},
    }


@pytest.fixture
def store(users):
    return InMemoryStore(users=users, tier_names={TIER_ID: "Gold"})


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        STRIPE_WEBHOOK_SECRET=TEST_WEBHOOK_SECRET,
        SUPABASE_URL="https://example.supabase.co",
        SUPABASE_SERVICE_ROLE_KEY="service-role-key",
        APP_BASE_URL="https://app.example.com/",
        LOG_LEVEL="debug",
    )
