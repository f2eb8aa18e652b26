"""Pytest configuration and fixtures."""

import os
import tempfile

# アプリを import する前にデータディレクトリを設定
os.environ.setdefault("COPYPASTA_DATA_DIR", tempfile.mkdtemp(prefix="copypasta-test-"))

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from copypasta.main import app
from copypasta.services.items import ItemService, get_service
from copypasta.store import ItemStore


class FakeClock:
    """テストから進められる時計"""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "data")


@pytest.fixture
def store(data_dir, clock):
    return ItemStore(data_dir, clock=clock)


@pytest.fixture
def service(store):
    return ItemService(store)


@pytest.fixture
def client(service):
    """get_service を差し替えたテストクライアント（startup は実行しない）"""

    app.dependency_overrides[get_service] = lambda: service

    yield TestClient(app)

    app.dependency_overrides.clear()
