"""Exact-match record store backed by SQLAlchemy."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sqlalchemy import delete, inspect as sa_inspect, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from portfolio.db.session import get_session
from portfolio.domain.errors import ConflictError, InternalError, ValidationError

logger = logging.getLogger(__name__)


class SQLRecordStore:
    """CRUD helpers for one mapped model, exchanging plain dicts."""

    def __init__(self, model) -> None:
        self.model = model
        mapper = sa_inspect(model)
        self.columns = tuple(attr.key for attr in mapper.column_attrs)
        self.key_column = mapper.primary_key[0].key
        self.entity = model.__tablename__

    # -------------------------- helpers --------------------------
    def _to_dict(self, entity) -> dict:
        return {name: getattr(entity, name) for name in self.columns}

    def _check_columns(self, names) -> None:
        for name in names:
            if name not in self.columns:
                raise ValidationError(f"Unknown field {name} for {self.entity}", entity=self.entity, field=name)

    def _criteria(self, query: Mapping[str, Any]) -> list:
        self._check_columns(query)
        return [getattr(self.model, name) == value for name, value in query.items()]

    def _check_patch(self, patch: Mapping[str, Any]) -> None:
        for name in patch:
            if name not in self.columns or name == self.key_column:
                raise ValidationError(f"Field {name} cannot be written on {self.entity}", entity=self.entity, field=name)

    def _fail(self, session, exc: SQLAlchemyError, action: str):
        session.rollback()
        if isinstance(exc, IntegrityError):
            raise ConflictError(f"Duplicate value on {self.entity}", entity=self.entity) from exc
        logger.error("%s.%s failed: %s", self.entity, action, exc)
        raise InternalError(f"Store failure on {self.entity}", entity=self.entity) from exc

    # -------------------------- reads --------------------------
    def find(self, query: Mapping[str, Any]) -> Optional[dict]:
        criteria = self._criteria(query)
        with get_session() as session:
            try:
                entity = session.execute(select(self.model).where(*criteria).limit(1)).scalars().first()
            except SQLAlchemyError as exc:
                self._fail(session, exc, "find")
            return self._to_dict(entity) if entity is not None else None

    def find_all(self, query: Optional[Mapping[str, Any]] = None) -> list[dict]:
        criteria = self._criteria(query or {})
        stmt = select(self.model).where(*criteria)
        if "created_at" in self.columns:
            stmt = stmt.order_by(self.model.created_at, getattr(self.model, self.key_column))
        with get_session() as session:
            try:
                rows = session.execute(stmt).scalars().all()
            except SQLAlchemyError as exc:
                self._fail(session, exc, "find_all")
            return [self._to_dict(row) for row in rows]

    # -------------------------- writes --------------------------
    def create(self, fields: Mapping[str, Any]) -> dict:
        self._check_columns(fields)
        entity = self.model(**fields)
        with get_session() as session:
            try:
                session.add(entity)
                session.commit()
                session.refresh(entity)
            except SQLAlchemyError as exc:
                self._fail(session, exc, "create")
            return self._to_dict(entity)

    def update(self, key: Any, patch: Mapping[str, Any]) -> Optional[dict]:
        self._check_patch(patch)
        with get_session() as session:
            try:
                entity = session.get(self.model, key)
                if entity is None:
                    return None
                for name, value in patch.items():
                    setattr(entity, name, value)
                session.commit()
                session.refresh(entity)
            except SQLAlchemyError as exc:
                self._fail(session, exc, "update")
            return self._to_dict(entity)

    def update_where(self, query: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        """Conditional update; returns how many rows matched."""
        criteria = self._criteria(query)
        self._check_patch(patch)
        stmt = update(self.model).where(*criteria).values(**patch)
        with get_session() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except SQLAlchemyError as exc:
                self._fail(session, exc, "update_where")
            return result.rowcount

    def delete(self, key: Any) -> Optional[dict]:
        with get_session() as session:
            try:
                entity = session.get(self.model, key)
                if entity is None:
                    return None
                removed = self._to_dict(entity)
                session.delete(entity)
                session.commit()
            except SQLAlchemyError as exc:
                self._fail(session, exc, "delete")
            return removed

    def delete_where(self, query: Mapping[str, Any]) -> int:
        criteria = self._criteria(query)
        with get_session() as session:
            try:
                result = session.execute(delete(self.model).where(*criteria))
                session.commit()
            except SQLAlchemyError as exc:
                self._fail(session, exc, "delete_where")
            return result.rowcount
