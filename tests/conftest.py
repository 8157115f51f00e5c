from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the portfolio package importable when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portfolio.core import config as core_config  # noqa: E402
from portfolio.core.rate_limiter import reset_limits  # noqa: E402
from portfolio.db import models  # noqa: E402
from portfolio.db import session as db_session  # noqa: E402
from portfolio.db.models import ResetToken, User  # noqa: E402
from portfolio.repositories.sql_repository import SQLRecordStore  # noqa: E402
from portfolio.services.user_service import UserService  # noqa: E402

WRITE_METHODS = {"create", "update", "update_where", "delete", "delete_where"}


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Point the app at a temporary SQLite file and reset settings/engine caches."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("PUBLIC_BASE_URL", "http://api.test")
    monkeypatch.setenv("SERVICE_URL", "http://front.test")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
    reset_limits()

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    try:
        models.Base.metadata.drop_all(bind=engine)
    except Exception:
        pass
    try:
        engine.dispose()
    except Exception:
        pass
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


class Outbox:
    """Notifier double that keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.messages: list[dict] = []

    def __call__(self, to_email, subject, html_body, text_body=None):
        self.messages.append({"to": to_email, "subject": subject, "html": html_body, "text": text_body})

    @property
    def last(self) -> dict:
        return self.messages[-1]


class SpyStore:
    """Delegates to a real store and remembers which methods were called."""

    def __init__(self, inner) -> None:
        self.inner = inner
        self.calls: list[str] = []

    def __getattr__(self, name):
        attr = getattr(self.inner, name)
        if not callable(attr):
            return attr

        def wrapper(*args, **kwargs):
            self.calls.append(name)
            return attr(*args, **kwargs)

        return wrapper

    @property
    def writes(self) -> list[str]:
        return [name for name in self.calls if name in WRITE_METHODS]


@pytest.fixture()
def outbox():
    return Outbox()


@pytest.fixture()
def user_store(db_env):
    return SpyStore(SQLRecordStore(User))


@pytest.fixture()
def reset_store(db_env):
    return SpyStore(SQLRecordStore(ResetToken))


@pytest.fixture()
def svc(user_store, reset_store, outbox):
    return UserService(store=user_store, reset_store=reset_store, notify=outbox)


@pytest.fixture()
def make_active_user(svc):
    """Register and activate a user, returning its public record."""

    def _make(name="A", email="a@x.com", password="p1"):
        result = svc.register({"name": name, "email": email, "password": password})
        return svc.activate(result.user["id"], result.activation_key)

    return _make
