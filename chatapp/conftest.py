from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from chatapp.app.main import create_app
from chatapp.assistant import Assistant
from chatapp.config import Settings
from chatapp.database import ChatStore


class FakeCompletions:
    """Stands in for client.chat.completions of the OpenAI SDK."""

    def __init__(self, reply="Hello from the model", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_llm_client(reply="Hello from the model", error=None):
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(reply, error)))


@pytest.fixture
def settings(tmp_path):
    return Settings({
        "DATABASE_URL": f"sqlite:///{tmp_path / 'chat.db'}",
        "FRONTEND_ORIGINS": "https://chat.example.com",
        "GROQ_API_KEY": "test-key",
    })


@pytest.fixture
def store(settings):
    s = ChatStore(settings.database_url).open()
    yield s
    s.close()


@pytest.fixture
def llm_client():
    return fake_llm_client()


@pytest.fixture
def assistant(settings, llm_client):
    return Assistant.from_settings(settings, client=llm_client)


@pytest.fixture
def client(settings, assistant):
    app = create_app(settings, ChatStore(settings.database_url), assistant)
    with TestClient(app) as c:
        yield c
