import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from core.relay import Relay
from data.repo import Repo
from utils.env import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite:///{tmp_path / 'relay.db'}")


@pytest.fixture
def repo(settings):
    r = Repo(settings.database_url)
    r.init_db()
    yield r
    r.engine.dispose()


@pytest.fixture
def relay(repo, settings):
    return Relay(repo, settings)


@pytest.fixture
def app(settings, repo):
    return create_app(settings, repo)


@pytest.fixture
def client(app):
    return TestClient(app)
