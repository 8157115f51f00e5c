"""CRUD endpoints shared by every owned record type."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends

from portfolio.domain.errors import NotFoundError
from portfolio.services.base_service import OwnedRecordService
from portfolio.services.record_service import record_services
from portfolio.services.session_service import require_user


def build_router(prefix: str, service: OwnedRecordService) -> APIRouter:
    router = APIRouter(prefix=f"/{prefix}", tags=[prefix])

    @router.post("/create", status_code=201)
    def create(payload: Optional[dict] = Body(None), user_id: str = Depends(require_user)):
        return service.add_owned(user_id, payload if isinstance(payload, dict) else {})

    @router.get("")
    def list_records(user_id: Optional[str] = None):
        if user_id:
            return service.get_user_owned(user_id)
        return service.get_all()

    @router.get("/{record_id}")
    def read(record_id: str):
        found = service.get(record_id)
        if found is None:
            raise NotFoundError(f"No {service.name} with id {record_id}", entity=service.name)
        return found

    @router.put("/{record_id}")
    def update(record_id: str, payload: Optional[dict] = Body(None), user_id: str = Depends(require_user)):
        data = payload if isinstance(payload, dict) else {}
        return service.set_owned(user_id, record_id, data.items())

    @router.delete("/{record_id}")
    def remove(record_id: str, user_id: str = Depends(require_user)):
        return service.delete_owned(user_id, record_id)

    return router


services = record_services()
routers = [build_router(prefix, service) for prefix, service in services.items()]
