"""Services for the records a user owns (awards, certificates, careers, tech stacks)."""

from __future__ import annotations

from portfolio.db.models import Award, Career, Certificate, TechStack
from portfolio.domain.schemas import AWARD, CAREER, CERTIFICATE, TECH_STACK
from portfolio.repositories.sql_repository import SQLRecordStore
from portfolio.services.base_service import OwnedRecordService

# url prefix, schema, model
OWNED_RECORDS = (
    ("awards", AWARD, Award),
    ("certificates", CERTIFICATE, Certificate),
    ("careers", CAREER, Career),
    ("techstacks", TECH_STACK, TechStack),
)


def record_services() -> dict[str, OwnedRecordService]:
    """One service per owned entity, keyed by url prefix."""
    return {prefix: OwnedRecordService(schema, SQLRecordStore(model)) for prefix, schema, model in OWNED_RECORDS}
