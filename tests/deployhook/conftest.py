"""Fixtures for deployhook tests."""

import pytest

from fakes import FakePlatformClient


@pytest.fixture
def platform():
    return FakePlatformClient()
