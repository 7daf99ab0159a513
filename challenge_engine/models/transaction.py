from sqlmodel import SQLModel, Field
from sqlalchemy import Column
from typing import Optional
from datetime import datetime
from enum import Enum

from .challenge import UTCDateTime, utcnow

class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"

class TransactionBase(SQLModel):
    user_id: str = Field(max_length=255, index=True)
    type: TransactionType
    amount: float = Field(ge=0)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

class Transaction(TransactionBase, table=True):
    __tablename__ = "ledger_transaction"

    transaction_id: Optional[int] = Field(default=None, primary_key=True)
    date: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(UTCDateTime, nullable=False, index=True),
    )
