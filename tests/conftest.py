import os
import sys
from types import SimpleNamespace

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from organizer import db
from organizer import models  # ensure models are registered with metadata
from organizer.generation import GeminiClient, get_gemini_client
from organizer.main import app


test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

def override_get_session():
    with Session(test_engine) as session:
        yield session


def reset_database():
    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)


db.engine = test_engine
app.dependency_overrides[db.get_session] = override_get_session


def auth_headers(auth_id="alice", first_name="Alice", last_name="Smith", email=None):
    return {
        "X-Auth-User-Id": auth_id,
        "X-Auth-User-Email": email or f"{auth_id}@example.com",
        "X-Auth-User-First-Name": first_name,
        "X-Auth-User-Last-Name": last_name,
    }


class FakeModels:
    def __init__(self, text):
        self.text = text
        self.calls = []

    def generate_content(self, model, contents):
        self.calls.append({"model": model, "contents": contents})
        return SimpleNamespace(text=self.text)


class FakeGenAIClient:
    def __init__(self, text):
        self.models = FakeModels(text)


@pytest.fixture(autouse=True)
def setup_db():
    reset_database()
    yield


@pytest.fixture
def client():
    reset_database()
    return TestClient(app, headers=auth_headers())


@pytest.fixture
def session():
    with Session(test_engine) as session:
        yield session


@pytest.fixture
def fake_gemini():
    """Install a canned model reply for the generation routes."""
    def install(text):
        fake = FakeGenAIClient(text)
        app.dependency_overrides[get_gemini_client] = lambda: GeminiClient(api_key="test", client=fake)
        return fake

    yield install
    app.dependency_overrides.pop(get_gemini_client, None)
