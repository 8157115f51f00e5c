"""
Schema-validated CRUD shared by every entity service.

EntityService only knows an EntitySchema and a RecordStore. It projects input
onto the schema's whitelist, checks required and unique fields, assigns ids
and answers exact-match queries. "Not found" is reported as None or an empty
list; callers decide whether absence is an error.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Iterable, Mapping, Optional, Union

from portfolio.domain.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from portfolio.domain.schemas import EntitySchema
from portfolio.repositories.base import RecordStore

logger = logging.getLogger(__name__)

Pairs = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]


class EntityService:
    """Generic service for one entity type."""

    def __init__(self, schema: EntitySchema, store: RecordStore) -> None:
        self.schema = schema
        self.store = store

    @property
    def name(self) -> str:
        return self.schema.name

    def add(self, record: Mapping[str, Any]) -> dict:
        """Validate and store a new record, returning it with its id."""
        if not isinstance(record, Mapping):
            raise ValidationError(f"{self.name} record must be an object", entity=self.name)
        data = self.schema.project(record)
        missing = self.schema.missing_required(data)
        if missing:
            raise ValidationError(f"{missing} field is required for {self.name} record", entity=self.name, field=missing)
        self._check_types(data)
        for field in self.schema.unique_fields:
            if field in data and self.store.find({field: data[field]}) is not None:
                raise ConflictError(f"{self.name} with this {field} already exists", entity=self.name, field=field)
        data["id"] = str(uuid.uuid4())
        added = self.store.create(data)
        logger.info("%s.add id=%s", self.name, added["id"])
        return added

    def _check_types(self, data: Mapping[str, Any]) -> None:
        bad = self.schema.mistyped(data)
        if bad:
            raise ValidationError(f"{bad} has the wrong type for {self.name} record", entity=self.name, field=bad)

    def get(self, record_id: Optional[str]) -> Optional[dict]:
        if not record_id:
            return None
        return self.store.find({"id": record_id})

    def get_all(self, query: Optional[Mapping[str, Any]] = None) -> list[dict]:
        query = dict(query or {})
        for field in query:
            if field != "id" and field not in self.schema.all_fields:
                raise ValidationError(f"{field} is not a field of {self.name}", entity=self.name, field=field)
        return self.store.find_all(query)

    def get_user_owned(self, user_id: str) -> list[dict]:
        return self.store.find_all({self.schema.owner_field: user_id})

    def set(self, record_id: str, pairs: Pairs) -> Optional[dict]:
        raise NotImplementedError(f"{self.name} does not define updates")

    def delete(self, record_id: str) -> Optional[dict]:
        raise NotImplementedError(f"{self.name} does not define deletion")


class OwnedRecordService(EntityService):
    """Awards, certificates, careers and tech stacks: records owned by one user."""

    def owner_of(self, record: Mapping[str, Any]) -> Optional[str]:
        return record.get(self.schema.owner_field)

    def set(self, record_id: str, pairs: Pairs) -> Optional[dict]:
        """Apply whitelisted (key, value) pairs. Returns None when the id is unknown."""
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        patch = {k: v for k, v in items if k in self.schema.mutable_fields}
        if not patch:
            return self.get(record_id)
        for field in self.schema.required_fields:
            if field in patch and patch[field] is None:
                raise ValidationError(f"{field} cannot be cleared on {self.name}", entity=self.name, field=field)
        self._check_types(patch)
        updated = self.store.update(record_id, patch)
        if updated is not None:
            logger.info("%s.set id=%s fields=%s", self.name, record_id, sorted(patch))
        return updated

    def delete(self, record_id: str) -> Optional[dict]:
        removed = self.store.delete(record_id)
        if removed is not None:
            logger.info("%s.delete id=%s", self.name, record_id)
        return removed

    # ------------------------------ owner-gated ------------------------------
    def _owned(self, caller_id: str, record_id: str) -> dict:
        record = self.get(record_id)
        if record is None:
            raise NotFoundError(f"No {self.name} with id {record_id}", entity=self.name)
        owner = self.owner_of(record)
        if owner != caller_id:
            raise ForbiddenError(
                f"Trying to modify another user's {self.name}",
                entity=self.name,
                caller_id=caller_id,
                target_id=owner,
            )
        return record

    def add_owned(self, caller_id: str, record: Mapping[str, Any]) -> dict:
        if not isinstance(record, Mapping):
            raise ValidationError(f"{self.name} record must be an object", entity=self.name)
        data = dict(record)
        claimed = data.get(self.schema.owner_field)
        if claimed is not None and claimed != caller_id:
            raise ForbiddenError(
                f"Trying to add a {self.name} for another user",
                entity=self.name,
                caller_id=caller_id,
                target_id=claimed,
            )
        data[self.schema.owner_field] = caller_id
        return self.add(data)

    def set_owned(self, caller_id: str, record_id: str, pairs: Pairs) -> dict:
        self._owned(caller_id, record_id)
        updated = self.set(record_id, pairs)
        if updated is None:
            raise NotFoundError(f"No {self.name} with id {record_id}", entity=self.name)
        return updated

    def delete_owned(self, caller_id: str, record_id: str) -> dict:
        self._owned(caller_id, record_id)
        removed = self.delete(record_id)
        if removed is None:
            raise NotFoundError(f"No {self.name} with id {record_id}", entity=self.name)
        return removed
