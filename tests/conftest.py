"""Shared test fixtures -- reduces boilerplate across test modules.

Provides:
- ``set_test_config`` -- autouse fixture that patches common settings
- ``USER_ID`` / ``OTHER_USER_ID`` / ``PROJECT_ID`` -- reusable IDs
- ``make_token`` / ``auth_header`` -- JWT helpers
- repo, store, recorder, gateway and engine fixtures built on tests/fakes.py
- ``test_client`` -- a TestClient around an app wired to the fake engine
"""

import os
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt
import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("TESTING", "1")

from finbuild.main import create_app  # noqa: E402
from finbuild.services.engine import build_engine  # noqa: E402
from finbuild.services.prompt.performance import PerformanceRecorder  # noqa: E402
from finbuild.services.prompt.template_store import TemplateStore  # noqa: E402

from tests.fakes import (  # noqa: E402
    FakeGateway,
    InMemoryComponentRepo,
    InMemoryPerformanceRepo,
    InMemoryProjectRepo,
    InMemoryTemplateRepo,
)


def pytest_configure(config):
    """Register custom markers.

    Tests that need a real Postgres should be decorated with
    ``@pytest.mark.integration`` and run with ``-m integration``.
    """
    config.addinivalue_line(
        "markers",
        "integration: tests requiring external services (database, provider API)",
    )


# ---------------------------------------------------------------------------
# Canonical test identifiers
# ---------------------------------------------------------------------------

USER_ID = UUID("22222222-2222-2222-2222-222222222222")
OTHER_USER_ID = UUID("33333333-3333-3333-3333-333333333333")
PROJECT_ID = UUID("44444444-4444-4444-4444-444444444444")

JWT_SECRET = "test-secret-key-for-unit-tests"

# ---------------------------------------------------------------------------
# Environment patching
# ---------------------------------------------------------------------------

_SETTINGS_PATCHES: dict[str, object] = {
    "finbuild.config.settings.JWT_SECRET": JWT_SECRET,
    "finbuild.config.settings.FRONTEND_URL": "http://localhost:5173",
    "finbuild.config.settings.LLM_PROVIDER": "anthropic",
    "finbuild.config.settings.ANTHROPIC_API_KEY": "test-key",
    "finbuild.config.settings.OPENAI_API_KEY": "",
    "finbuild.config.settings.LLM_RETRY_BASE_DELAY": 0.01,
}


@pytest.fixture(autouse=True)
def set_test_config(monkeypatch):
    """Patch common settings for a deterministic, non-production configuration."""
    for target, value in _SETTINGS_PATCHES.items():
        monkeypatch.setattr(target, value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_token(user_id: UUID | str = USER_ID, *, expires_in: timedelta = timedelta(hours=1),
               audience: str = "finbuild") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "aud": audience,
        "iss": "finbuild",
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def auth_header(user_id: UUID | str = USER_ID) -> dict:
    """Return an ``Authorization`` header dict with a valid JWT."""
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def template_repo() -> InMemoryTemplateRepo:
    return InMemoryTemplateRepo()


@pytest.fixture
def component_repo() -> InMemoryComponentRepo:
    return InMemoryComponentRepo()


@pytest.fixture
def store(template_repo, component_repo) -> TemplateStore:
    return TemplateStore(template_repo, component_repo)


@pytest.fixture
def performance_repo() -> InMemoryPerformanceRepo:
    return InMemoryPerformanceRepo()


@pytest.fixture
def recorder(performance_repo) -> PerformanceRecorder:
    return PerformanceRecorder(performance_repo)


@pytest.fixture
def project_repo() -> InMemoryProjectRepo:
    return InMemoryProjectRepo()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def engine(gateway, template_repo, performance_repo, project_repo, component_repo):
    return build_engine(
        gateway=gateway,
        template_repo=template_repo,
        performance_repo=performance_repo,
        project_repo=project_repo,
        component_repo=component_repo,
    )


@pytest.fixture
def test_client(engine) -> TestClient:
    """A ``TestClient`` around an app wired to the in-memory engine."""
    return TestClient(create_app(engine))
