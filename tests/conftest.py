"""Pytest configuration and fixtures."""

import os
import secrets
import sys
from unittest.mock import MagicMock

import pytest

# Generate a unique test secret for this test run to prevent token forgery
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# For unit tests, set mock values ONLY if not running integration tests
if not os.environ.get("RUN_INTEGRATION"):
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
    os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
    os.environ.setdefault("CRON_SECRET", "test-cron-secret")
else:
    # For integration tests, load from .env
    from pathlib import Path

    from dotenv import load_dotenv

    env_path = Path(__file__).parent.parent / ".env"

    # Safety check: require explicit confirmation for integration tests
    if not os.environ.get("CONFIRM_INTEGRATION_CREDENTIALS"):
        print("\n" + "=" * 70, file=sys.stderr)
        print(
            "WARNING: Integration tests will use REAL credentials from .env",
            file=sys.stderr,
        )
        print(
            "   This may affect production databases and trigger real payments.",
            file=sys.stderr,
        )
        print("   Set CONFIRM_INTEGRATION_CREDENTIALS=yes to proceed.", file=sys.stderr)
        print("=" * 70 + "\n", file=sys.stderr)
        pytest.exit(
            "Integration tests require CONFIRM_INTEGRATION_CREDENTIALS=yes",
            returncode=1,
        )

    print("\nRunning integration tests with REAL credentials\n", file=sys.stderr)
    load_dotenv(env_path, override=True)

from ajira.database import get_db  # noqa: E402
from ajira.main import app  # noqa: E402
from ajira.rate_limit import limiter  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Clearly invalid test ids that cannot collide with production ids
CUSTOMER_ID = "usr_TEST_CUSTOMER_000"
VENDOR_ID = "usr_TEST_VENDOR_000"
ADMIN_ID = "usr_TEST_ADMIN_000"
OTHER_ID = "usr_TEST_OTHER_000"


@pytest.fixture
def mock_db():
    """Stand-in Supabase client injected through the ``get_db`` dependency."""
    return MagicMock()


@pytest.fixture
def client(mock_db):
    """Create a test client with rate limits off and a mocked database."""
    if not os.environ.get("RUN_INTEGRATION"):
        app.dependency_overrides[get_db] = lambda: mock_db
    limiter.enabled = False
    yield TestClient(app)
    limiter.enabled = True
    app.dependency_overrides.clear()


def make_auth_headers(user_id: str, roles: list[str]) -> dict:
    from ajira.auth import create_access_token
    from ajira.config import get_settings

    token = create_access_token(user_id, get_settings(), roles=roles)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers():
    """Headers for a plain customer."""
    return make_auth_headers(CUSTOMER_ID, ["customer"])


@pytest.fixture
def other_headers():
    """Headers for a second customer who owns nothing in the fixtures."""
    return make_auth_headers(OTHER_ID, ["customer"])


@pytest.fixture
def vendor_headers():
    return make_auth_headers(VENDOR_ID, ["vendor"])


@pytest.fixture
def admin_headers():
    return make_auth_headers(ADMIN_ID, ["admin"])
