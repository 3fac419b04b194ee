"""Shared fixtures for proof-of-usage tests."""

import pytest

from fakes import FakeProofApi
from usage_proof.core.enums import WindowType
from usage_proof.core.models import UsageWindow


@pytest.fixture
def window():
    return UsageWindow(type=WindowType.LAST_30_DAYS, start=1_697_408_000, end=1_700_000_000)


@pytest.fixture
def fake_api():
    return FakeProofApi()


@pytest.fixture
def client(fake_api):
    return fake_api.client()
