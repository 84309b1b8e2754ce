"""Pytest fixtures and configuration for logtrigger tests.

All tests are unit tests: the engine does no I/O, so log text and trigger
configurations are built inline. CLI tests write their inputs to tmp_path.
"""

from datetime import datetime, timedelta

import pytest

from logtrigger.config import Settings
from logtrigger.services.trigger_tester import TriggerTester

TIMESTAMP_FORMAT = "yyyy-MM-dd HH:mm:ss"
BASE_TIME = datetime(2026, 2, 11, 10, 0, 0)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the default engine caps, independent of the environment."""
    return Settings(
        app_name="logtrigger-test",
        log_level="DEBUG",
        max_multi_instances=20,
        max_chain_resets=100,
        max_firings=100,
        default_timestamp_format=None,
    )


@pytest.fixture
def tester(test_settings: Settings) -> TriggerTester:
    """Trigger tester bound to test settings."""
    return TriggerTester(test_settings)


@pytest.fixture
def timestamp_format() -> str:
    return TIMESTAMP_FORMAT


# =============================================================================
# Log Builders
# =============================================================================


def stamp(seconds: float) -> str:
    """Timestamp text for BASE_TIME plus an offset in seconds."""
    return (BASE_TIME + timedelta(seconds=seconds)).strftime("%Y-%m-%d %H:%M:%S")


def timed_log(*entries: tuple[float, str]) -> str:
    """Build log text from (offset seconds, message) pairs."""
    return "\n".join(f"{stamp(offset)} {message}" for offset, message in entries)


@pytest.fixture
def make_log():
    """Factory for timestamped log text."""
    return timed_log


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no I/O)")
    config.addinivalue_line("markers", "integration: Integration tests (CLI end to end)")
