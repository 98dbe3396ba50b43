"""
Configuration de la connexion à la base de données (SQLite par défaut).
Utilise SQLAlchemy avec un moteur synchrone : les routes tournent dans le threadpool FastAPI.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

from ticketboard.config import settings


def _build_engine():
    connect_args = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(settings.DATABASE_URL, connect_args=connect_args)


engine = _build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db() -> None:
    """Crée les tables manquantes (pas de migrations pour ce projet)."""
    import ticketboard.models  # noqa: F401 (enregistre les modèles dans Base.metadata)

    Base.metadata.create_all(bind=engine)


def utcnow() -> datetime:
    """Horodatage UTC naïf, comparable aux colonnes DateTime relues depuis SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    """Dépendance FastAPI : fournit une session BDD et la ferme après usage."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
