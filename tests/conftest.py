import pytest
import logging
import os
import sys
from unittest.mock import Mock

# Add the project root to the path so we can import from the package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


class RecordingScheduler:
    """Runs continuations immediately and remembers the requested delays."""

    def __init__(self):
        self.delays = []

    def __call__(self, delay, continuation):
        self.delays.append(delay)
        continuation()


@pytest.fixture
def test_logger():
    """Create a logger for testing."""
    logger = logging.getLogger("test_logger")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def mock_logger():
    return Mock()


@pytest.fixture
def immediate_scheduler():
    return RecordingScheduler()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove provider and corrector settings from the environment."""
    for name in (
        "BAIDU_API_KEY",
        "BAIDU_SECRET_KEY",
        "DEEPSEEK_API_KEY",
        "DEEPSEEK_MODEL",
        "TEXT_CORRECTOR_PROVIDER",
        "TEXT_CORRECTOR_MAX_CHUNK_SIZE",
        "TEXT_CORRECTOR_LARGE_TEXT_THRESHOLD",
        "TEXT_CORRECTOR_MAX_RETRIES",
        "TEXT_CORRECTOR_TOKEN_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def main():
    """Run the test suite with coverage reporting."""
    import pytest
    sys.exit(pytest.main(["-xvs", "--cov=text_corrector", "--cov-report=term", "--cov-report=html"]))


if __name__ == "__main__":
    main()
