# tests/conftest.py
import os
import sys
import tempfile

# Settings are cached on first use, so point them somewhere harmless before
# any hookpanel module is imported.
os.environ.setdefault("HOOKPANEL_DATA_DIR", tempfile.mkdtemp(prefix="hookpanel-tests-"))
os.environ.setdefault("HOOKPANEL_ACCESS_KEY", "test-access-key")

import pytest
import toml
from fastapi.testclient import TestClient

from hookpanel.database.db import Base, SessionLocal, configure_engine, init_db
from hookpanel.service.auth import reset_access_key
from hookpanel.service.models.db_model import Script
from hookpanel.static.config_store import ConfigStore
from hookpanel.static.log_recorder import reset_log_recorder
from hookpanel.utils.settings import get_settings

ACCESS_KEY = "test-access-key"


@pytest.fixture(autouse=True)
def settings(tmp_path, monkeypatch):
    """Fresh data directory, settings file and database for every test"""
    data_dir = tmp_path / "data"
    config_file = tmp_path / "hookpanel.toml"
    config_file.write_text(toml.dumps({
        "data_dir": str(data_dir),
        "default_timeout": 30,
        "script_log_max_bytes": 64 * 1024,
        # Run python scripts with the interpreter running the tests
        "executors": {"python": sys.executable, "python3": sys.executable},
    }))
    monkeypatch.setenv("HOOKPANEL_CONFIG", str(config_file))
    monkeypatch.setenv("HOOKPANEL_DATA_DIR", str(data_dir))
    monkeypatch.setenv("HOOKPANEL_ACCESS_KEY", ACCESS_KEY)

    get_settings.cache_clear()
    reset_log_recorder()
    reset_access_key()

    current = get_settings()
    engine = configure_engine(current.sqlalchemy_url)
    init_db()
    db = SessionLocal()
    try:
        ConfigStore(db).seed_defaults()
    finally:
        db.close()

    yield current

    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    get_settings.cache_clear()
    reset_log_recorder()
    reset_access_key()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_script(db):
    def _make(content="echo hello", executor="bash", enabled=True, name="test script", timeout=None):
        script = Script(name=name, content=content, executor=executor, enabled=enabled, timeout=timeout)
        db.add(script)
        db.commit()
        db.refresh(script)
        return script
    return _make


@pytest.fixture
def client():
    from hookpanel.main import create_app

    app = create_app(start_scheduler=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {ACCESS_KEY}"}
