import pytest

from fakes import FakeHttp

BACKEND = "http://backend.test"


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """Set safe defaults for tests (no real backend, throwaway session db)."""
    monkeypatch.setenv("FLASK_SECRET_KEY", "test_" + "a"*64)
    monkeypatch.setenv("SWOLEGEN_API_BASE", BACKEND)
    monkeypatch.setenv("SESSION_DB", str(tmp_path / "session.db"))
    monkeypatch.setenv("FLASK_ENV", "development")


@pytest.fixture
def store(tmp_path):
    from session_store import SessionStore
    return SessionStore(str(tmp_path / "session.db"))


@pytest.fixture
def fake_http():
    return FakeHttp(BACKEND)


@pytest.fixture
def orchestrator(store, fake_http):
    from workflow import WorkflowOrchestrator
    return WorkflowOrchestrator(store, base_url=BACKEND, http=fake_http)


@pytest.fixture
def flask_app(store, orchestrator):
    from app import create_app
    return create_app(store=store, orchestrator=orchestrator)


@pytest.fixture
def client(flask_app):
    flask_app.testing = True
    return flask_app.test_client()
