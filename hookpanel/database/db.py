# hookpanel/database/db.py
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from hookpanel.utils.settings import get_settings

Base = declarative_base()

SessionLocal = sessionmaker(autocommit=False, autoflush=False)

engine = None


def configure_engine(url: str):
    """Bind the session factory to a (new) engine for the given URL"""
    global engine
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # Needed for SQLite
    engine = create_engine(url, connect_args=connect_args)
    SessionLocal.configure(bind=engine)
    return engine


def init_db():
    """Create the data directories and tables"""
    settings = get_settings()
    for path in (settings.data_dir, settings.script_log_dir, settings.scratch_dir):
        os.makedirs(path, exist_ok=True)

    if engine is None:
        configure_engine(settings.sqlalchemy_url)

    # Register models on Base.metadata
    from hookpanel.service.models import db_model  # noqa: F401
    Base.metadata.create_all(bind=engine)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
