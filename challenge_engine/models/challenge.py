from pydantic import BaseModel
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Index, JSON, String, text
from sqlalchemy.types import TypeDecorator
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

class ChallengeType(str, Enum):
    NO_SPEND = "no_spend"
    BUDGET_CUT = "budget_cut"
    SAVINGS_SPRINT = "savings_sprint"

class ChallengeStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Naive values are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timestamp column stored as naive UTC and always loaded timezone-aware.

    SQLite has no zone-aware timestamp type, so the zone is dropped on write
    and put back on read. Any aware value is converted to UTC first.
    """
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return as_utc(value)


# Typed metadata, one variant per challenge type. Stored as JSON on the row.
class NoSpendMeta(BaseModel):
    pass

class BudgetCutMeta(BaseModel):
    baseline: float

class SavingsSprintMeta(BaseModel):
    pass

META_TYPES = {
    ChallengeType.NO_SPEND: NoSpendMeta,
    ChallengeType.BUDGET_CUT: BudgetCutMeta,
    ChallengeType.SAVINGS_SPRINT: SavingsSprintMeta,
}


class ChallengeBase(SQLModel):
    user_id: str = Field(max_length=255, index=True)
    title: str = Field(max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    target_value: float
    current_value: float = 0

class Challenge(ChallengeBase, table=True):
    challenge_id: Optional[int] = Field(default=None, primary_key=True)
    start_date: datetime = Field(sa_column=Column(UTCDateTime, nullable=False))
    end_date: datetime = Field(sa_column=Column(UTCDateTime, nullable=False))
    # ChallengeType / ChallengeStatus values, stored as plain strings
    type: str = Field(sa_column=Column(String(32), nullable=False))
    status: str = Field(
        default=ChallengeStatus.ACTIVE.value,
        sa_column=Column(String(16), nullable=False, index=True),
    )
    # "metadata" is reserved on SQLModel classes
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(UTCDateTime, nullable=False))

    __table_args__ = (
        # At most one active challenge per (user, type)
        Index(
            "uq_challenge_active_user_type",
            "user_id",
            "type",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    @property
    def challenge_type(self) -> ChallengeType:
        return ChallengeType(self.type)

    @property
    def is_active(self) -> bool:
        return self.status == ChallengeStatus.ACTIVE

    @property
    def typed_meta(self) -> BaseModel:
        return META_TYPES[self.challenge_type].model_validate(self.meta or {})


# Catalog entry shown for challenge types a user can join
class ChallengeTemplate(BaseModel):
    type: ChallengeType
    title: str
    description: str
