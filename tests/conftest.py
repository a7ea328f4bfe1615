import pytest

from gigsync.navigation import Navigator
from gigsync.storage import MemoryStorage
from fakes import RecordingSleep


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def navigator():
    return Navigator("/")


@pytest.fixture
def sleeps():
    return RecordingSleep()
