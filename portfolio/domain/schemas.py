"""Entity schemas: which fields each record type accepts, requires and owns."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


@dataclass(frozen=True)
class EntitySchema:
    """Immutable field configuration injected into an entity service."""

    name: str
    required_fields: tuple[str, ...] = ()
    optional_fields: tuple[str, ...] = ()
    unique_fields: tuple[str, ...] = ()
    owner_field: str = "user_id"
    # field -> accepted value types; None always passes, unlisted fields are not checked
    field_types: Mapping[str, tuple[type, ...]] = field(default_factory=dict, compare=False)

    @property
    def all_fields(self) -> tuple[str, ...]:
        return self.required_fields + self.optional_fields

    @property
    def mutable_fields(self) -> tuple[str, ...]:
        """Fields an update may touch: everything except the owner reference."""
        return tuple(f for f in self.all_fields if f != self.owner_field)

    def project(self, record: Mapping[str, Any], fields: Optional[tuple[str, ...]] = None) -> dict:
        """Drop every key that is not declared by the schema."""
        allowed = self.all_fields if fields is None else fields
        return {k: v for k, v in record.items() if k in allowed}

    def missing_required(self, data: Mapping[str, Any]) -> Optional[str]:
        for name in self.required_fields:
            if name not in data:
                return name
        return None

    def mistyped(self, data: Mapping[str, Any]) -> Optional[str]:
        """First field whose value has a type the schema does not accept."""
        for name, value in data.items():
            accepted = self.field_types.get(name)
            if accepted and value is not None and not isinstance(value, accepted):
                return name
        return None


def _text(*names: str) -> dict:
    return {name: (str,) for name in names}


PROFILE_FIELDS = ("name", "description", "profile_image_url", "category", "mvp")

USER = EntitySchema(
    name="user",
    required_fields=("email", "password_hash", "name"),
    optional_fields=(
        "description",
        "profile_image_url",
        "category",
        "mvp",
        "activation_state",
        "activation_key",
        "following",
    ),
    unique_fields=("email",),
    owner_field="id",
    field_types={
        **_text("email", "password_hash", "name", "description", "profile_image_url", "category", "activation_state", "activation_key"),
        "mvp": (bool,),
        "following": (list,),
    },
)

# Awards kept their historical owner column name.
AWARD = EntitySchema(
    name="award",
    required_fields=("awardee_id", "title"),
    optional_fields=("description",),
    owner_field="awardee_id",
    field_types=_text("awardee_id", "title", "description"),
)

CERTIFICATE = EntitySchema(
    name="certificate",
    required_fields=("user_id", "title"),
    optional_fields=("description", "when_date"),
    field_types=_text("user_id", "title", "description", "when_date"),
)

CAREER = EntitySchema(
    name="career",
    required_fields=("user_id", "title"),
    optional_fields=("description", "from_date", "to_date"),
    field_types=_text("user_id", "title", "description", "from_date", "to_date"),
)

TECH_STACK = EntitySchema(
    name="techstack",
    required_fields=("user_id", "title"),
    optional_fields=("description",),
    field_types=_text("user_id", "title", "description"),
)
