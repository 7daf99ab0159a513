"""Per-type challenge behaviour.

Each challenge type gets one strategy object that knows how to seed a new
challenge, recompute its progress from the ledger, and decide whether it was
successful once its window has closed. Everything here is a pure function of
its arguments: ``now`` and the ledger are always passed in.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict

from pydantic import BaseModel

from ..errors import InvalidInputError, LedgerUnavailableError
from ..models.challenge import (
    BudgetCutMeta,
    Challenge,
    ChallengeTemplate,
    ChallengeType,
    NoSpendMeta,
    SavingsSprintMeta,
)
from .ledger import DINING_CATEGORY_TOKENS, LedgerQuery

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

# Expenses at or below this amount are treated as noise (bank fees and the like)
NO_SPEND_AMOUNT_FLOOR = 10
BUDGET_CUT_LOOKBACK = timedelta(days=30)
BUDGET_CUT_FALLBACK_BASELINE = 5000
BUDGET_CUT_FACTOR = 0.8
SAVINGS_SPRINT_TARGET = 2000


@dataclass
class Seed:
    target_value: float
    meta: BaseModel


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


class ChallengeStrategy:
    type: ChallengeType
    title: str
    description: str
    duration: timedelta
    # Higher current_value is better unless overridden
    lower_is_better = False

    def template(self) -> ChallengeTemplate:
        return ChallengeTemplate(type=self.type, title=self.title, description=self.description)

    def seed(self, user_id: str, now: datetime, ledger: LedgerQuery) -> Seed:
        raise NotImplementedError

    def evaluate(self, challenge: Challenge, now: datetime, ledger: LedgerQuery) -> float:
        raise NotImplementedError

    def is_successful(self, challenge: Challenge) -> bool:
        if self.lower_is_better:
            return challenge.current_value <= challenge.target_value
        return challenge.current_value >= challenge.target_value

    def progress_label(self, challenge: Challenge) -> str:
        raise NotImplementedError

    def progress(self, challenge: Challenge) -> dict:
        if challenge.target_value:
            percent = challenge.current_value / challenge.target_value * 100
        else:
            percent = 0.0
        return {
            "percent": round(percent, 2),
            "label": self.progress_label(challenge),
            "over_budget": self.lower_is_better and percent > 100,
        }


class NoSpendStrategy(ChallengeStrategy):
    """Counts clean days: elapsed days minus days with a qualifying expense."""

    type = ChallengeType.NO_SPEND
    title = "No-Spend Week"
    description = "Spend 0 on non-essentials for 7 days."
    duration = timedelta(days=7)

    def seed(self, user_id, now, ledger):
        return Seed(target_value=7, meta=NoSpendMeta())

    def evaluate(self, challenge, now, ledger):
        """Clean days from start_date up to min(now, end_date).

        Days after end_date never count, so a refresh long after expiry
        settles on the in-window result. Recomputed from scratch every pass
        because past ledger entries may have been edited.
        """
        window_end = min(now, challenge.end_date)
        dirty_days = ledger.distinct_expense_days(
            challenge.user_id, NO_SPEND_AMOUNT_FLOOR, challenge.start_date, window_end
        )
        days_passed = (window_end - challenge.start_date) // ONE_DAY
        return max(0, days_passed - len(dirty_days))

    def progress_label(self, challenge):
        return f"{_fmt(challenge.current_value)}/{_fmt(challenge.target_value)} Days Clean"


class BudgetCutStrategy(ChallengeStrategy):
    """Keeps dining spend for the window at or under 80% of the last 30 days."""

    type = ChallengeType.BUDGET_CUT
    title = "Food Budget Cut"
    description = "Cut your dining expenses by 20%."
    duration = timedelta(days=30)
    lower_is_better = True

    def seed(self, user_id, now, ledger):
        try:
            baseline = ledger.sum_expenses(
                user_id, DINING_CATEGORY_TOKENS, now - BUDGET_CUT_LOOKBACK, now
            )
        except LedgerUnavailableError as e:
            logger.warning("Dining baseline unavailable for user %s, using fallback: %s", user_id, e)
            baseline = 0
        if not baseline or baseline <= 0:
            baseline = BUDGET_CUT_FALLBACK_BASELINE
        return Seed(
            target_value=round_half_up(baseline * BUDGET_CUT_FACTOR),
            meta=BudgetCutMeta(baseline=baseline),
        )

    def evaluate(self, challenge, now, ledger):
        return ledger.sum_expenses(
            challenge.user_id, DINING_CATEGORY_TOKENS, challenge.start_date, challenge.end_date
        ) or 0

    def progress_label(self, challenge):
        return f"{_fmt(challenge.current_value)} / {_fmt(challenge.target_value)} Spent"


class SavingsSprintStrategy(ChallengeStrategy):
    """Net savings (income minus expenses) over the window must reach the target."""

    type = ChallengeType.SAVINGS_SPRINT
    title = "7-Day Savings Sprint"
    description = "Save an extra 2,000 this week."
    duration = timedelta(days=7)

    def seed(self, user_id, now, ledger):
        return Seed(target_value=SAVINGS_SPRINT_TARGET, meta=SavingsSprintMeta())

    def evaluate(self, challenge, now, ledger):
        window_end = min(now, challenge.end_date)
        return ledger.net_savings(challenge.user_id, challenge.start_date, window_end)

    def progress_label(self, challenge):
        return f"{_fmt(challenge.current_value)} / {_fmt(challenge.target_value)} Saved"


STRATEGIES: Dict[ChallengeType, ChallengeStrategy] = {
    strategy.type: strategy
    for strategy in (NoSpendStrategy(), BudgetCutStrategy(), SavingsSprintStrategy())
}


def get_strategy(challenge_type) -> ChallengeStrategy:
    try:
        return STRATEGIES[ChallengeType(challenge_type)]
    except ValueError:
        raise InvalidInputError(f"Unknown challenge type: {challenge_type!r}")
