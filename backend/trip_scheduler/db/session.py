from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from typing import Optional
import importlib.util
from trip_scheduler.core.config import settings

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None

def normalize_database_url(url: str) -> str:
    # If the provided URL is the plain 'postgresql://' (or legacy 'postgres://') SQLAlchemy
    # will try to load the default driver (psycopg2). We only ship 'psycopg' v3
    # (dependency: psycopg[binary]), so the URL is adjusted to that driver when psycopg2 is absent.
    psycopg2_present = importlib.util.find_spec("psycopg2") is not None
    if not psycopg2_present and url.startswith(("postgres://", "postgresql://")) and "+psycopg" not in url:
        # Normalize legacy prefix 'postgres://' -> 'postgresql://'
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://"):]
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url

def get_engine() -> Engine:
    global _engine
    if _engine is None:
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL environment variable must be set")
        _engine = create_engine(normalize_database_url(settings.database_url), pool_pre_ping=True)
    return _engine

def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory

def SessionLocal() -> Session:
    return get_session_factory()()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
