"""
Test fixtures for the Student Progress Engine.

Provides a controllable clock, an in-memory store and a service wired to both.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))
os.environ.setdefault("PROGRESS_LOG_DIR", tempfile.mkdtemp(prefix="progress-logs-"))

from config import ProgressConfig  # noqa: E402
from models import QuizAnswer  # noqa: E402
from progress_service import ProgressService  # noqa: E402
from progress_store import InMemoryProgressStore  # noqa: E402
from streak import ONE_DAY  # noqa: E402

# 2026-01-05 09:00 UTC
START = 1_767_603_600_000
ONE_HOUR = ONE_DAY // 24


class FixedClock:
    """Callable clock returning epoch millis; tests move it explicitly."""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


def make_answers(total: int, correct: int):
    return tuple(
        QuizAnswer(question_id=f"q{i}", selected_answer=0, correct_answer=0 if i < correct else 1,
                   is_correct=i < correct)
        for i in range(total)
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def config():
    return ProgressConfig(store_timeout_seconds=1.0, max_save_attempts=3, reset_token="")


@pytest.fixture
def service(store, config, clock):
    return ProgressService(store, config=config, clock=clock)
