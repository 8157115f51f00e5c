"""Interface every record store offers to the services."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

Record = dict


class RecordStore(Protocol):
    def create(self, fields: Mapping[str, Any]) -> Record: ...

    def find(self, query: Mapping[str, Any]) -> Optional[Record]: ...

    def find_all(self, query: Optional[Mapping[str, Any]] = None) -> list[Record]: ...

    def update(self, key: Any, patch: Mapping[str, Any]) -> Optional[Record]: ...

    def update_where(self, query: Mapping[str, Any], patch: Mapping[str, Any]) -> int: ...

    def delete(self, key: Any) -> Optional[Record]: ...

    def delete_where(self, query: Mapping[str, Any]) -> int: ...
