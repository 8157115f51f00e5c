"""
Account use cases: registration, activation, login, owner-gated profile
changes, password reset and the following set.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional
import time

from portfolio.core.config import get_settings
from portfolio.core.mailer import dispatch_email
from portfolio.core.security import hash_password, keys_match, new_activation_key, verify_password
from portfolio.core.utils import absolute_url, normalize_email
from portfolio.db.models import ResetToken, User
from portfolio.domain.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from portfolio.domain.schemas import PROFILE_FIELDS, USER
from portfolio.repositories.base import RecordStore
from portfolio.repositories.sql_repository import SQLRecordStore
from portfolio.services.base_service import EntityService, Pairs
from portfolio.services.session_service import delete_session, delete_user_sessions, issue_session

logger = logging.getLogger(__name__)

PENDING = "pending"
ACTIVE = "active"

PRIVATE_FIELDS = ("password_hash", "activation_key", "following_version")

FOLLOWING_ATTEMPTS = 3

Notifier = Callable[[str, str, str, Optional[str]], None]


def public_user(record: Optional[Mapping[str, Any]]) -> Optional[dict]:
    """Strip credentials before a user record leaves the service."""
    if record is None:
        return None
    return {k: v for k, v in record.items() if k not in PRIVATE_FIELDS}


@dataclass
class RegisterResult:
    user: dict
    activation_key: str
    activation_url: str


@dataclass
class LoginResult:
    user: dict
    token: str


class UserService(EntityService):
    """User entity service with identity rules on top of the generic CRUD."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        reset_store: Optional[RecordStore] = None,
        notify: Optional[Notifier] = None,
    ) -> None:
        super().__init__(USER, store or SQLRecordStore(User))
        self.reset_store = reset_store or SQLRecordStore(ResetToken)
        self.notify = notify or dispatch_email
        self.settings = get_settings()

    # -------------------------------------- helpers --------------------------------------
    def _now(self) -> int:
        return int(time.time())

    def _token_expired(self, created_at: datetime | int | None, now: int, *, ttl_seconds: int) -> bool:
        if ttl_seconds <= 0:
            return False
        if isinstance(created_at, datetime):
            normalized = created_at.astimezone(timezone.utc) if created_at.tzinfo else created_at.replace(tzinfo=timezone.utc)
            created_ts = int(normalized.timestamp())
        else:
            created_ts = int(created_at or 0)
        if not created_ts:
            return True
        return (created_ts + ttl_seconds) < now

    def _ensure_owner(self, caller_id: Optional[str], user_id: str, action: str) -> None:
        if not caller_id or caller_id != user_id:
            raise ForbiddenError(
                f"Trying to {action} of a different user",
                entity=self.name,
                caller_id=caller_id,
                target_id=user_id,
            )

    def _require(self, user_id: str) -> dict:
        user = self.get(user_id)
        if user is None:
            raise NotFoundError(f"No user with id {user_id}", entity=self.name)
        return user

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        # Delivery is best effort; the stored record is already committed.
        try:
            self.notify(to_email, subject, html_body, text_body)
        except Exception:
            logger.exception("Could not queue mail '%s' for %s", subject, to_email)

    def _activation_url(self, user_id: str, activation_key: str) -> str:
        return absolute_url(f"/users/{user_id}/activate/{activation_key}")

    def _send_activation(self, user: Mapping[str, Any], activation_url: str) -> None:
        html_body = f"""
        <html><body>
        <p>Hello {user.get("name") or ""}!</p>
        <p><a href="{activation_url}">Click here to activate your portfolio account</a></p>
        <p>If the link does not work, paste this address into your browser:</p>
        <p>{activation_url}</p>
        </body></html>
        """
        self._send(
            user["email"],
            "Activate your portfolio account",
            html_body,
            f"Activate your account: {activation_url}",
        )

    # -------------------------------------- hooks --------------------------------------
    def set(self, record_id: str, pairs: Pairs) -> Optional[dict]:
        """Sparse profile patch: unknown keys and None values are ignored."""
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        changes = {k: v for k, v in items if k in PROFILE_FIELDS and v is not None}
        if "name" in changes and not (isinstance(changes["name"], str) and changes["name"].strip()):
            raise ValidationError("name cannot be empty", entity=self.name, field="name")
        if "mvp" in changes and not isinstance(changes["mvp"], bool):
            raise ValidationError("mvp must be a boolean", entity=self.name, field="mvp")
        self._check_types(changes)
        if not changes:
            return self.get(record_id)
        return self.store.update(record_id, changes)

    def delete(self, record_id: str) -> Optional[dict]:
        return self.store.delete(record_id)

    # -------------------------------------- registration --------------------------------------
    def register(self, payload: Any) -> RegisterResult:
        if not isinstance(payload, Mapping) or not payload:
            raise ValidationError("Request body must be a non-empty JSON object", entity=self.name)
        for field in ("name", "email", "password"):
            value = payload.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{field} is required", entity=self.name, field=field)
        email = normalize_email(payload["email"])
        activation_key = new_activation_key()
        # The key is written together with the row, so a pending user always has one.
        user = self.add(
            {
                "name": payload["name"].strip(),
                "email": email,
                "password_hash": hash_password(payload["password"]),
                "activation_state": PENDING,
                "activation_key": activation_key,
                "following": [],
                "mvp": False,
            }
        )
        activation_url = self._activation_url(user["id"], activation_key)
        self._send_activation(user, activation_url)
        logger.info("Registered user %s, activation pending", user["id"])
        return RegisterResult(user=public_user(user), activation_key=activation_key, activation_url=activation_url)

    def resend_activation(self, email: str) -> bool:
        user = self.store.find({"email": normalize_email(email)}) if normalize_email(email) else None
        if not user or user.get("activation_state") != PENDING or not user.get("activation_key"):
            return False
        self._send_activation(user, self._activation_url(user["id"], user["activation_key"]))
        return True

    # -------------------------------------- activation --------------------------------------
    def activate(self, user_id: str, activation_key: str) -> dict:
        user = self._require(user_id)
        stored = user.get("activation_key")
        if user.get("activation_state") != PENDING or not keys_match(stored, activation_key):
            raise ForbiddenError("Mismatching activation code", entity=self.name, field="activation_key")
        changed = self.store.update_where(
            {"id": user_id, "activation_state": PENDING, "activation_key": stored},
            {"activation_state": ACTIVE, "activation_key": None},
        )
        if changed != 1:
            # Someone else consumed the key between our read and write.
            raise ForbiddenError("Mismatching activation code", entity=self.name, field="activation_key")
        logger.info("Activated user %s", user_id)
        return public_user(self._require(user_id))

    # -------------------------------------- login --------------------------------------
    def login(self, email: Any, password: Any) -> LoginResult:
        raw_email = normalize_email(email)
        if not raw_email or not isinstance(password, str):
            raise UnauthorizedError("Invalid email or password", entity=self.name)
        user = self.store.find({"email": raw_email})
        if not user or not verify_password(password, user.get("password_hash")):
            raise UnauthorizedError("Invalid email or password", entity=self.name)
        if user.get("activation_state") != ACTIVE:
            raise ForbiddenError("Account not activated", entity=self.name, field="activation_state")
        token = issue_session(user["id"])
        logger.info("User %s logged in", user["id"])
        return LoginResult(user=public_user(user), token=token)

    def logout(self, session_token: Optional[str]) -> None:
        delete_session(session_token)

    # -------------------------------------- reads --------------------------------------
    def get_current_user(self, caller_id: str) -> dict:
        return public_user(self._require(caller_id))

    def get_user(self, user_id: str) -> dict:
        return public_user(self._require(user_id))

    def list_users(self) -> list[dict]:
        return [public_user(user) for user in self.get_all()]

    # -------------------------------------- owner-gated --------------------------------------
    def update_profile(self, caller_id: str, user_id: str, patch: Any) -> dict:
        self._ensure_owner(caller_id, user_id, "set the profile")
        if not isinstance(patch, Mapping):
            raise ValidationError("Profile update must be a JSON object", entity=self.name)
        self._require(user_id)
        updated = self.set(user_id, patch)
        if updated is None:
            raise NotFoundError(f"No user with id {user_id}", entity=self.name)
        return public_user(updated)

    def update_password(self, caller_id: str, user_id: str, password: Any, password_reset: Any) -> dict:
        self._ensure_owner(caller_id, user_id, "set the password")
        if not (isinstance(password, str) and password) or not (isinstance(password_reset, str) and password_reset):
            raise ValidationError("password and password_reset are required", entity=self.name, field="password")
        self._require(user_id)
        token = self.reset_store.find({"token": password_reset})
        if not token or token.get("user_id") != user_id:
            raise ForbiddenError("Invalid or expired password reset token", entity=self.name, field="password_reset")
        if self._token_expired(token.get("created_at"), self._now(), ttl_seconds=self.settings.password_reset_ttl):
            self.reset_store.delete_where({"token": password_reset})
            raise ForbiddenError("Invalid or expired password reset token", entity=self.name, field="password_reset")
        consumed = self.reset_store.delete_where({"token": password_reset, "user_id": user_id})
        if consumed != 1:
            raise ForbiddenError("Invalid or expired password reset token", entity=self.name, field="password_reset")
        self.reset_store.delete_where({"user_id": user_id})
        updated = self.store.update(user_id, {"password_hash": hash_password(password)})
        if updated is None:
            raise NotFoundError(f"No user with id {user_id}", entity=self.name)
        logger.info("Password changed for user %s", user_id)
        return public_user(updated)

    def issue_password_reset(self, email: str) -> bool:
        raw = normalize_email(email)
        if not raw:
            return False
        user = self.store.find({"email": raw})
        if not user:
            return False
        self.reset_store.delete_where({"user_id": user["id"]})
        token = secrets.token_urlsafe(24)
        self.reset_store.create({"token": token, "user_id": user["id"]})
        reset_url = f"{self.settings.service_url}/password-reset?user={user['id']}&token={token}"
        html_body = f"""
        <html><body>
        <p>We received a request to reset your password.</p>
        <p><a href="{reset_url}">Reset password</a></p>
        <p>If it was not you, ignore this message.</p>
        </body></html>
        """
        self._send(raw, "Reset your portfolio password", html_body, f"Use this link to reset your password: {reset_url}")
        logger.info("Issued password reset for user %s", user["id"])
        return True

    def update_following(self, caller_id: str, user_id: str, following: Any, state: Any) -> dict:
        self._ensure_owner(caller_id, user_id, "set the following list")
        if not isinstance(following, str) or not following.strip():
            raise ValidationError("following is required", entity=self.name, field="following")
        if not isinstance(state, bool):
            raise ValidationError("state must be true or false", entity=self.name, field="state")
        for _ in range(FOLLOWING_ATTEMPTS):
            user = self._require(user_id)
            current = list(user.get("following") or [])
            if state:
                if following == user_id:
                    raise ValidationError("Users cannot follow themselves", entity=self.name, field="following")
                if following in current:
                    return public_user(user)
                if self.get(following) is None:
                    raise NotFoundError(f"No user with id {following}", entity=self.name, field="following")
                current.append(following)
            else:
                if following not in current:
                    return public_user(user)
                current = [uid for uid in current if uid != following]
            version = user.get("following_version") or 0
            # Only write over the list we read; a concurrent change bumps the version.
            changed = self.store.update_where(
                {"id": user_id, "following_version": version},
                {"following": current, "following_version": version + 1},
            )
            if changed == 1:
                return public_user(self._require(user_id))
            logger.info("Following list of user %s changed concurrently, retrying", user_id)
        raise ConflictError("Following list is changing too fast, try again", entity=self.name, field="following")

    def delete_user(self, caller_id: str, user_id: str) -> dict:
        self._ensure_owner(caller_id, user_id, "delete the account")
        self._require(user_id)
        delete_user_sessions(user_id)
        self.reset_store.delete_where({"user_id": user_id})
        removed = self.delete(user_id)
        if removed is None:
            raise NotFoundError(f"No user with id {user_id}", entity=self.name)
        logger.info("Deleted user %s", user_id)
        return public_user(removed)
