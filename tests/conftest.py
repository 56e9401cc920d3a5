import pytest

from importer.models import ImportConfig
from importer.services.store import MemoryStore

from fakes import FakeClock


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def config():
    return ImportConfig(poll_interval=0.01)


@pytest.fixture
def fake_clock():
    return FakeClock()
