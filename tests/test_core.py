from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from portfolio.core import config as core_config
from portfolio.core import mailer
from portfolio.core.rate_limiter import _RateLimiter
from portfolio.core.security import hash_password, keys_match, new_activation_key, verify_password
from portfolio.db.models import User, UserSession
from portfolio.db import session as db_session
from portfolio.db.session import get_session
from portfolio.domain.errors import InternalError
from portfolio.repositories.sql_repository import SQLRecordStore
from portfolio.services import session_service


def test_password_hash_roundtrip():
    stored = hash_password("p1")

    assert stored.startswith("argon2$")
    assert verify_password("p1", stored)
    assert not verify_password("p2", stored)
    assert not verify_password("p1", None)
    assert not verify_password("p1", "plaintext")


def test_activation_keys_are_128_bit_hex_and_compared_exactly():
    key = new_activation_key()

    assert re.fullmatch(r"[0-9a-f]{32}", key)
    assert new_activation_key() != key
    assert keys_match(key, key)
    assert not keys_match(key, key[:-1])
    assert not keys_match(key, key + "0")
    assert not keys_match(None, key)
    assert not keys_match(key, "")


def test_settings_fall_back_on_bad_integers(monkeypatch):
    monkeypatch.setenv("PASSWORD_RESET_TTL", "soon")
    monkeypatch.setenv("SERVICE_URL", "http://front.test/")
    core_config.get_settings.cache_clear()
    try:
        settings = core_config.get_settings()
        assert settings.password_reset_ttl == 3600
        assert settings.service_url == "http://front.test"
    finally:
        core_config.get_settings.cache_clear()


def test_mail_without_smtp_is_skipped_and_logged(monkeypatch, caplog):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    core_config.get_settings.cache_clear()
    try:
        with caplog.at_level(logging.WARNING, logger="portfolio.core.mailer"):
            assert mailer._deliver("a@x.com", "Hello", "<p>hi</p>", "hi") is False
        assert any("not delivered" in r.getMessage() for r in caplog.records)
    finally:
        core_config.get_settings.cache_clear()


def test_dispatch_email_does_not_block(monkeypatch):
    sent = []
    done = threading.Event()

    def fake_send(*args):
        sent.append(args)
        done.set()
        return True

    monkeypatch.setattr(mailer, "send_email", fake_send)

    mailer.dispatch_email("a@x.com", "Hello", "<p>hi</p>", "hi")

    assert done.wait(timeout=5)

    assert sent == [("Hello", "a@x.com", "<p>hi</p>", "hi")]


def test_expired_session_is_dropped(db_env):
    SQLRecordStore(User).create({"id": "u1", "email": "a@x.com", "password_hash": "h", "name": "A"})
    token = session_service.issue_session("u1")
    assert session_service.resolve_token(token) == "u1"

    with get_session() as session:
        entity = session.get(UserSession, token)
        entity.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.commit()

    assert session_service.resolve_token(token) is None
    with get_session() as session:
        assert session.get(UserSession, token) is None


def test_session_store_failure_is_an_internal_error(db_env):
    SQLRecordStore(User).create({"id": "u1", "email": "a@x.com", "password_hash": "h", "name": "A"})
    UserSession.__table__.drop(db_session.get_engine())

    with pytest.raises(InternalError):
        session_service.issue_session("u1")
    with pytest.raises(InternalError):
        session_service.resolve_token("any-token")


def test_rate_limiter_blocks_over_limit_and_forgets_ended_windows():
    now = [1000.0]
    limiter = _RateLimiter(clock=lambda: now[0], sweep_interval=0)

    limiter.check("login:1.1.1.1", limit=2, window_seconds=60)
    limiter.check("login:1.1.1.1", limit=2, window_seconds=60)
    with pytest.raises(HTTPException) as info:
        limiter.check("login:1.1.1.1", limit=2, window_seconds=60)
    assert info.value.status_code == 429

    limiter.check("login:2.2.2.2", limit=2, window_seconds=60)
    assert len(limiter) == 2

    now[0] += 61
    limiter.check("login:3.3.3.3", limit=2, window_seconds=60)
    assert len(limiter) == 1
    limiter.check("login:1.1.1.1", limit=2, window_seconds=60)
