import pytest
from fastapi.testclient import TestClient

from evote.app import create_app
from evote.config import Settings
from tests.helpers import T0, Clock, RecordingMailer, auth_header, election_payload, register_verified
from tests.memory_store import MemoryStore


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", api_prefix="/api", log_level="WARNING")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def clock():
    return Clock(T0)


@pytest.fixture
def app(settings, store, mailer, clock):
    return create_app(settings, store=store, mailer=mailer, clock=clock)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_token(client, mailer):
    return register_verified(client, mailer, "admin@evote.org", name="Admin", role="admin")[1]


@pytest.fixture
def voter(client, mailer):
    return register_verified(client, mailer, "voter@evote.org", name="Voter")


@pytest.fixture
def election(client, admin_token):
    resp = client.post("/api/elections", json=election_payload(), headers=auth_header(admin_token))
    assert resp.status_code == 201, resp.text
    return resp.json()
