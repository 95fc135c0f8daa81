"""Shared fixtures."""

import pytest

from reconstruction.settings import FusionSettings
from tests.fakes import FakeVolumeEngine, make_frame_pair


@pytest.fixture
def engine():
    return FakeVolumeEngine()


@pytest.fixture
def settings():
    return FusionSettings()


@pytest.fixture
def frame_pair():
    return make_frame_pair()
