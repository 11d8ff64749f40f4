import datetime as dt
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from verifier.config import SessionConfig  # noqa: E402
from verifier.sessions import SessionStore  # noqa: E402

START = dt.datetime(2026, 10, 19, 12, 0, 0, tzinfo=dt.timezone.utc)


class ManualClock:
    def __init__(self, start: dt.datetime) -> None:
        self.now = start

    def __call__(self) -> dt.datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += dt.timedelta(**kwargs)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(ttl_minutes=15, liveness_seconds=10, log_cap=50, sweep_interval_seconds=300)


@pytest.fixture
def store(session_config: SessionConfig, clock: ManualClock) -> SessionStore:
    return SessionStore(config=session_config, clock=clock)
