"""Admission, progress refresh and settlement of money challenges.

Challenges are never advanced by a background job. Whenever a user's
challenges are listed, ``ChallengeService.refresh`` recomputes every active
challenge from the ledger and settles the ones whose window has closed.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    AlreadyActiveError,
    ConflictError,
    DuplicateActiveError,
    InvalidInputError,
    LedgerUnavailableError,
    RefreshFailure,
    RefreshResult,
    StorageError,
)
from ..models.challenge import Challenge, ChallengeStatus, ChallengeTemplate, as_utc, utcnow
from .ledger import LedgerQuery, TimeboxedLedger
from .repository import ChallengeRepository
from .strategies import STRATEGIES, ChallengeStrategy, get_strategy

logger = logging.getLogger(__name__)


def _resolve_now(now: Optional[datetime]) -> datetime:
    return utcnow() if now is None else as_utc(now)


def validate_user_id(user_id) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidInputError("user_id must be a non-empty string")
    return user_id.strip()


def settle(strategy: ChallengeStrategy, challenge: Challenge, now: datetime) -> str:
    """Return the status the challenge should have at ``now``.

    A challenge only leaves ``active`` once ``now`` is past its end date, and
    terminal statuses are returned unchanged.
    """
    if not challenge.is_active or now <= challenge.end_date:
        return challenge.status
    if strategy.is_successful(challenge):
        return ChallengeStatus.COMPLETED.value
    return ChallengeStatus.FAILED.value


class ChallengeService:
    def __init__(self, repository: ChallengeRepository, ledger: LedgerQuery):
        self.repository = repository
        self.ledger = ledger

    def _ledger(self, timeout: Optional[float]) -> LedgerQuery:
        if timeout:
            return TimeboxedLedger(self.ledger, timeout)
        return self.ledger

    def join(self, user_id: str, challenge_type, now: Optional[datetime] = None,
             timeout: Optional[float] = None) -> Challenge:
        user_id = validate_user_id(user_id)
        strategy = get_strategy(challenge_type)
        now = _resolve_now(now)

        if self.repository.find_active_by_user_and_type(user_id, strategy.type):
            logger.info("User %s already has an active %s challenge", user_id, strategy.type.value)
            raise AlreadyActiveError(user_id, strategy.type.value)

        seed = strategy.seed(user_id, now, self._ledger(timeout))
        challenge = Challenge(
            user_id=user_id,
            type=strategy.type.value,
            title=strategy.title,
            description=strategy.description,
            start_date=now,
            end_date=now + strategy.duration,
            target_value=seed.target_value,
            current_value=0,
            status=ChallengeStatus.ACTIVE.value,
            meta=seed.meta.model_dump(),
        )
        try:
            challenge = self.repository.create(challenge)
        except DuplicateActiveError as e:
            # Lost the race against a concurrent join for the same type
            logger.info("Concurrent join rejected for user %s (%s)", user_id, strategy.type.value)
            raise AlreadyActiveError(user_id, strategy.type.value) from e

        logger.info(
            "User %s joined %s challenge %s (target %s, ends %s)",
            user_id, challenge.type, challenge.challenge_id, challenge.target_value, challenge.end_date,
        )
        return challenge

    def refresh(self, user_id: str, now: Optional[datetime] = None,
                timeout: Optional[float] = None) -> RefreshResult:
        """Recompute and settle the user's active challenges, then list them all.

        A ledger or storage failure only skips the challenge it happened on.
        It is reported in ``RefreshResult.errors`` and that challenge is left
        as stored. Naive ``now`` values are taken to be UTC.
        """
        user_id = validate_user_id(user_id)
        now = _resolve_now(now)
        ledger = self._ledger(timeout)
        result = RefreshResult()

        for challenge in self.repository.find_active_by_user(user_id):
            strategy = get_strategy(challenge.type)
            try:
                current_value = strategy.evaluate(challenge, now, ledger)
            except LedgerUnavailableError as e:
                logger.warning("Skipping challenge %s for user %s: %s", challenge.challenge_id, user_id, e)
                result.errors.append(RefreshFailure(challenge.challenge_id, challenge.type, e))
                continue

            previous = (challenge.current_value, challenge.status)
            challenge.current_value = current_value
            challenge.status = settle(strategy, challenge, now)
            if (challenge.current_value, challenge.status) == previous:
                continue

            try:
                self.repository.update(challenge)
            except ConflictError:
                # A concurrent pass already stored its result for this row
                logger.debug("Challenge %s updated concurrently, keeping stored row", challenge.challenge_id)
                self.repository.reload(challenge)
                continue
            except SQLAlchemyError as e:
                failure = RefreshFailure(
                    challenge.challenge_id, challenge.type,
                    StorageError(f"Challenge {challenge.challenge_id} could not be saved"),
                )
                logger.error("Could not store challenge %s for user %s: %s", challenge.challenge_id, user_id, e)
                self.repository.rollback()
                result.errors.append(failure)
                continue

            if not challenge.is_active:
                logger.info(
                    "Challenge %s (%s) for user %s settled as %s with %s/%s",
                    challenge.challenge_id, challenge.type, user_id, challenge.status,
                    challenge.current_value, challenge.target_value,
                )

        result.challenges = self.repository.find_all_by_user(user_id)
        return result

    # Consumer-facing name for the refresh-then-list read
    list_with_refresh = refresh

    def available(self, user_id: str) -> List[ChallengeTemplate]:
        user_id = validate_user_id(user_id)
        active_types = {c.type for c in self.repository.find_active_by_user(user_id)}
        return [
            strategy.template()
            for strategy in STRATEGIES.values()
            if strategy.type.value not in active_types
        ]

    def completed_count(self, user_id: str) -> int:
        return self.repository.count_completed_by_user(validate_user_id(user_id))
