# =============================================================================
# 🗄️ database.py
# -----------------------------------------------------------------------------
# SQLAlchemy-Datenbankkonfiguration für Dynamic QR
# Unterstützt MySQL (PyMySQL) + SQLite + .env
# =============================================================================

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import get_database_url

SQLALCHEMY_DATABASE_URL = get_database_url()

# 🔹 SQLite braucht check_same_thread=False, weil FastAPI Threads wechselt
_connect_args = (
    {"check_same_thread": False}
    if SQLALCHEMY_DATABASE_URL.startswith("sqlite")
    else {}
)

# 🔹 Engine erstellen
# pool_pre_ping = erkennt automatisch unterbrochene Verbindungen
# pool_recycle = hält MySQL-Verbindungen frisch
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args=_connect_args,
    pool_pre_ping=True,
    pool_recycle=280,
)

# 🔹 SessionFactory – erzeugt Session für jede Anfrage
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# 🔹 Basisklasse für alle SQLAlchemy-Modelle
Base = declarative_base()


def init_db(bind=None) -> None:
    """Legt fehlende Tabellen an."""
    import models  # noqa: F401  (registriert alle Modelle an Base.metadata)

    Base.metadata.create_all(bind=bind or engine)


# 🔹 Dependency für FastAPI
def get_db():
    """
    Erstellt eine neue Datenbank-Session pro Anfrage und schließt sie automatisch.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
