from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import RedirectResponse

from portfolio.core.config import get_settings
from portfolio.core.rate_limiter import rate_limit_ip
from portfolio.services.session_service import bearer_token, require_user
from portfolio.services.user_service import UserService

router = APIRouter(tags=["users"])
user_service = UserService()


def _body(payload: Optional[dict]) -> dict:
    return payload if isinstance(payload, dict) else {}


@router.post("/user/register", status_code=201)
def register(request: Request, payload: Optional[dict] = Body(None)):
    rate_limit_ip(request, "user:register", limit=20, window_seconds=300)
    result = user_service.register(payload)
    return result.user


@router.post("/user/login")
def login(request: Request, payload: Optional[dict] = Body(None)):
    rate_limit_ip(request, "user:login", limit=20, window_seconds=300)
    data = _body(payload)
    result = user_service.login(data.get("email"), data.get("password"))
    return {**result.user, "token": result.token}


@router.post("/user/logout", status_code=204, dependencies=[Depends(require_user)])
def logout(request: Request):
    user_service.logout(bearer_token(request))


@router.post("/user/password-reset", status_code=202)
def request_password_reset(request: Request, payload: Optional[dict] = Body(None)):
    rate_limit_ip(request, "user:password-reset", limit=5, window_seconds=300)
    # Same answer whether or not the email exists.
    user_service.issue_password_reset(_body(payload).get("email") or "")
    return {"ok": True}


@router.post("/user/activation/resend", status_code=202)
def resend_activation(request: Request, payload: Optional[dict] = Body(None)):
    rate_limit_ip(request, "user:activation", limit=5, window_seconds=300)
    user_service.resend_activation(_body(payload).get("email") or "")
    return {"ok": True}


@router.get("/userlist")
def list_users(user_id: str = Depends(require_user)):
    return user_service.list_users()


@router.get("/user/current")
def current_user(user_id: str = Depends(require_user)):
    return user_service.get_current_user(user_id)


@router.get("/users/{target_id}/activate/{activation_key}")
def activate(target_id: str, activation_key: str):
    user_service.activate(target_id, activation_key)
    return RedirectResponse(get_settings().service_url, status_code=303)


@router.get("/users/{target_id}")
def get_user(target_id: str):
    return user_service.get_user(target_id)


@router.put("/users/{target_id}")
def update_profile(target_id: str, payload: Optional[dict] = Body(None), user_id: str = Depends(require_user)):
    return user_service.update_profile(user_id, target_id, _body(payload))


@router.put("/users/{target_id}/password")
def update_password(target_id: str, payload: Optional[dict] = Body(None), user_id: str = Depends(require_user)):
    data = _body(payload)
    return user_service.update_password(user_id, target_id, data.get("password"), data.get("password_reset"))


@router.put("/users/{target_id}/following")
def update_following(target_id: str, payload: Optional[dict] = Body(None), user_id: str = Depends(require_user)):
    data = _body(payload)
    return user_service.update_following(user_id, target_id, data.get("following"), data.get("state"))


@router.delete("/users/{target_id}")
def delete_user(target_id: str, user_id: str = Depends(require_user)):
    return user_service.delete_user(user_id, target_id)
