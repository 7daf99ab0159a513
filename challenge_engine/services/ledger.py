"""Ledger queries consumed by the challenge engine.

The ledger itself belongs to the transactions subsystem. The engine only needs
a few aggregate reads over it, described by ``LedgerQuery``. ``SqlLedger``
answers them from the ``transaction`` table, and ``TimeboxedLedger`` bounds
any ledger's calls with a timeout.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, Set

from sqlalchemy import func, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..config import LEDGER_MAX_WORKERS
from ..errors import LedgerUnavailableError
from ..models.transaction import Transaction, TransactionType

logger = logging.getLogger(__name__)

# Naive keyword heuristic for dining/food spend, matched case-insensitively
DINING_CATEGORY_TOKENS = ("food", "dining", "swiggy", "zomato")


class LedgerQuery(Protocol):
    def sum_expenses(self, user_id: str, category_tokens: Iterable[str], start: datetime, end: datetime) -> float:
        """Sum of expense amounts in [start, end] whose category contains any token."""
        ...

    def distinct_expense_days(self, user_id: str, amount_floor: float, start: datetime, end: datetime) -> Set[date]:
        """Calendar dates in [start, end] with at least one expense above amount_floor."""
        ...

    def net_savings(self, user_id: str, start: datetime, end: datetime) -> float:
        """Income minus expenses in [start, end]."""
        ...


class SqlLedger:
    """LedgerQuery over the transaction table.

    Each query opens its own session on the engine, so calls are safe to run
    on a worker thread.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def sum_expenses(self, user_id, category_tokens, start, end):
        category = func.lower(func.coalesce(Transaction.category, ""))
        statement = (
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .where(
                (Transaction.user_id == user_id) &
                (Transaction.type == TransactionType.EXPENSE) &
                (Transaction.date >= start) &
                (Transaction.date <= end)
            )
            .where(or_(*[category.contains(token.lower()) for token in category_tokens]))
        )
        return float(self._scalar(statement))

    def distinct_expense_days(self, user_id, amount_floor, start, end):
        statement = select(Transaction.date).where(
            (Transaction.user_id == user_id) &
            (Transaction.type == TransactionType.EXPENSE) &
            (Transaction.amount > amount_floor) &
            (Transaction.date >= start) &
            (Transaction.date <= end)
        )
        try:
            with Session(self.engine) as session:
                dates = session.exec(statement).all()
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"Ledger query failed: {e}") from e
        return {d.date() for d in dates}

    def net_savings(self, user_id, start, end):
        window = (
            (Transaction.user_id == user_id) &
            (Transaction.date >= start) &
            (Transaction.date <= end)
        )
        income = self._scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .where(window & (Transaction.type == TransactionType.INCOME))
        )
        expenses = self._scalar(
            select(func.coalesce(func.sum(Transaction.amount), 0))
            .where(window & (Transaction.type == TransactionType.EXPENSE))
        )
        return float(income) - float(expenses)

    def _scalar(self, statement):
        try:
            with Session(self.engine) as session:
                return session.exec(statement).one()
        except SQLAlchemyError as e:
            raise LedgerUnavailableError(f"Ledger query failed: {e}") from e


_executor = ThreadPoolExecutor(max_workers=LEDGER_MAX_WORKERS, thread_name_prefix="ledger")


class TimeboxedLedger:
    """Wraps a ledger so every query gives up after ``timeout`` seconds.

    A timed out query keeps running on its worker thread and its result is
    discarded. All instances share one pool of ``LEDGER_MAX_WORKERS`` threads,
    so while that many queries hang past their timeout, new queries wait in
    the pool queue and time out without having run. Size the pool for the
    expected number of concurrent slow queries.
    """

    def __init__(self, ledger: LedgerQuery, timeout: Optional[float]):
        self.ledger = ledger
        self.timeout = timeout

    def sum_expenses(self, user_id, category_tokens, start, end):
        return self._call(self.ledger.sum_expenses, user_id, tuple(category_tokens), start, end)

    def distinct_expense_days(self, user_id, amount_floor, start, end):
        return self._call(self.ledger.distinct_expense_days, user_id, amount_floor, start, end)

    def net_savings(self, user_id, start, end):
        return self._call(self.ledger.net_savings, user_id, start, end)

    def _call(self, fn, *args):
        if not self.timeout:
            return fn(*args)
        future = _executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("Ledger query %s timed out after %ss", fn.__name__, self.timeout)
            raise LedgerUnavailableError(f"Ledger query timed out after {self.timeout}s")
