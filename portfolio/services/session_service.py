"""Session helpers: issue bearer tokens and resolve them to a caller id."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Request

from portfolio.core.config import get_settings
from portfolio.db.models import UserSession
from portfolio.repositories.sql_repository import SQLRecordStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "

_sessions = SQLRecordStore(UserSession)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    return value.astimezone(timezone.utc) if value.tzinfo else value.replace(tzinfo=timezone.utc)


def issue_session(user_id: str) -> str:
    """Create a new session token for the user and persist it."""
    token = secrets.token_urlsafe(32)
    settings = get_settings()
    ttl = max(60, settings.session_ttl_seconds)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
    _sessions.create({"token": token, "user_id": user_id, "expires_at": expires_at})
    return token


def bearer_token(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX) :].strip()
    return token or None


def resolve_token(token: str | None) -> str | None:
    """Return the user id owning a live session token, if any."""
    if not token:
        return None
    found = _sessions.find({"token": token})
    if not found:
        return None
    expires_at = as_utc(found["expires_at"])
    if expires_at and expires_at < datetime.now(timezone.utc):
        _sessions.delete_where({"token": token})
        return None
    return found["user_id"]


def current_user_id(request: Request) -> str | None:
    """Return the user id behind the request's bearer token, if any."""
    return resolve_token(bearer_token(request))


def require_user(request: Request) -> str:
    """FastAPI dependency for login-gated routes."""
    user_id = current_user_id(request)
    if not user_id:
        raise HTTPException(401, "Login required", headers={"WWW-Authenticate": "Bearer"})
    return user_id


def delete_session(token: str | None) -> None:
    """Remove a session token from the store."""
    if token:
        _sessions.delete_where({"token": token})


def delete_user_sessions(user_id: str) -> None:
    dropped = _sessions.delete_where({"user_id": user_id})
    logger.info("Dropped %s sessions of user %s", dropped, user_id)
