import pytest

from fakes import FakeHost


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def mac_host():
    return FakeHost(platform="MacIntel")
