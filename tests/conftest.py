import pytest

from config import Settings
from core.scheduler import ManualScheduler

from fakes import FakeTransport, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler(start=1_760_000_000.0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
