"""
Configuration partagée pour tous les tests.
Base SQLite en mémoire (une seule connexion partagée) à la place de la base réelle,
et répertoire d'upload temporaire par test.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import ticketboard.models  # noqa: E402,F401
from ticketboard.config import settings  # noqa: E402
from ticketboard.database import Base, get_db  # noqa: E402
from ticketboard.main import app  # noqa: E402
from ticketboard.services.notification_bus import NotificationBus  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class RecordingBus(NotificationBus):
    """Bus qui mémorise les événements publiés au lieu de les diffuser."""

    def __init__(self):
        super().__init__()
        self.events = []

    def publish(self, room_code, event_type, payload=None):
        self.events.append((room_code, event_type, payload))

    def types_for(self, room_code):
        return [t for code, t, _ in self.events if code == room_code]


@pytest.fixture(autouse=True)
def tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Chaque test écrit ses fichiers dans son propre répertoire."""
    path = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.fixture
def client():
    """Client HTTP de test branché sur la base en mémoire."""
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
