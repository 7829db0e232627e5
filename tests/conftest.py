import logging

import pytest

from shared.helper.HelperConfig import HelperConfig
from tests.fakes import FakeEmbed, FakeKV, FakeRag, FakeStore


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=logging.getLogger("drive_recognition_bridge.tests"))


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def embed() -> FakeEmbed:
    return FakeEmbed()


@pytest.fixture
def rag() -> FakeRag:
    return FakeRag()


@pytest.fixture
def kv() -> FakeKV:
    return FakeKV()
