"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from apptrail.reconciler.config import ReconcilerConfig, reset_reconciler_config
from apptrail.tracker.models import Observation

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Keep config and logging singletons from leaking between tests."""
    from apptrail.config.settings import reset_settings
    from apptrail.utils.logging import reset_logging

    reset_settings()
    reset_reconciler_config()
    yield
    reset_settings()
    reset_reconciler_config()
    reset_logging()


@pytest.fixture
def reconciler_config() -> ReconcilerConfig:
    """Default reconciler config, isolated from any .env file."""
    return ReconcilerConfig(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def make_observation():
    """Factory for observations; ``day`` offsets the timestamp from BASE_TIME."""

    def _make(source_id: str, day: int = 0, **fields) -> Observation:
        fields.setdefault("timestamp", BASE_TIME + timedelta(days=day))
        fields.setdefault("sender", "Jane Doe <jane@acme.com>")
        fields.setdefault("subject", "")
        fields.setdefault("body", "")
        return Observation(source_id=source_id, **fields)

    return _make


@pytest.fixture
def lifecycle_observations(make_observation) -> list[Observation]:
    """Application confirmation, interview invite and rejection, in that order."""
    return [
        make_observation(
            "msg-1",
            day=0,
            sender="Acme Careers <noreply@acme.com>",
            subject="We received your application",
            body="Thanks for applying to the Backend Engineer role.",
            company="Acme Corp",
            position="Backend Engineer",
            confidence=0.7,
        ),
        make_observation(
            "msg-2",
            day=7,
            subject="Interview invitation",
            body="Please join the interview via the Zoom link below.",
            company="Acme Corp",
            position="Backend Engineer",
            location="https://zoom.us/j/123456",
            confidence=0.8,
        ),
        make_observation(
            "msg-3",
            day=14,
            subject="Your candidacy at Acme",
            body="Unfortunately, we decided to go with another candidate.",
            company="Acme",
            position="Backend Engineer",
            confidence=0.6,
        ),
    ]
