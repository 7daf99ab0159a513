"""Shared fixtures: a throwaway SQLite database and an in-process ledger."""

# pylint: disable=redefined-outer-name  # Pytest fixtures redefine names


import pytest
from sqlmodel import Session, SQLModel, create_engine

from challenge_engine.errors import LedgerUnavailableError
from challenge_engine.models import challenge, transaction  # noqa: F401
from challenge_engine.services.challenges import ChallengeService
from challenge_engine.services.repository import ChallengeRepository



class FakeLedger:
    """LedgerQuery over a list of transactions kept in memory.

    Methods named in ``failing`` raise LedgerUnavailableError.
    """

    def __init__(self):
        self.transactions = []
        self.failing = set()
        self.calls = []

    def add(self, user_id, amount, date, category=None, type="expense"):
        self.transactions.append(
            {"user_id": user_id, "type": type, "amount": amount, "category": category, "date": date}
        )

    def _check(self, name):
        self.calls.append(name)
        if name in self.failing or "*" in self.failing:
            raise LedgerUnavailableError(f"{name} unavailable")

    def _window(self, user_id, start, end):
        return [
            t for t in self.transactions
            if t["user_id"] == user_id and start <= t["date"] <= end
        ]

    def sum_expenses(self, user_id, category_tokens, start, end):
        self._check("sum_expenses")
        tokens = [token.lower() for token in category_tokens]
        return sum(
            t["amount"] for t in self._window(user_id, start, end)
            if t["type"] == "expense" and any(token in (t["category"] or "").lower() for token in tokens)
        )

    def distinct_expense_days(self, user_id, amount_floor, start, end):
        self._check("distinct_expense_days")
        return {
            t["date"].date() for t in self._window(user_id, start, end)
            if t["type"] == "expense" and t["amount"] > amount_floor
        }

    def net_savings(self, user_id, start, end):
        self._check("net_savings")
        total = 0
        for t in self._window(user_id, start, end):
            total += t["amount"] if t["type"] == "income" else -t["amount"]
        return total


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'challenges.db'}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def repository(session):
    return ChallengeRepository(session)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def service(repository, ledger):
    return ChallengeService(repository, ledger)
