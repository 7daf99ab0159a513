from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..errors import ConflictError, DuplicateActiveError, NotFoundError
from ..models.challenge import Challenge, ChallengeStatus, ChallengeType


class ChallengeRepository:
    """Durable store of Challenge rows backed by a SQLModel session."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, challenge: Challenge) -> Challenge:
        self.session.add(challenge)
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            # Only the partial unique index on active rows means "already active",
            # any other constraint failure is a genuine storage error
            active = self.session.exec(
                select(Challenge.challenge_id)
                .where(
                    (Challenge.user_id == challenge.user_id) &
                    (Challenge.type == challenge.type) &
                    (Challenge.status == ChallengeStatus.ACTIVE.value)
                )
            ).first()
            if active is None:
                raise
            raise DuplicateActiveError(
                f"User {challenge.user_id} already has an active {challenge.type} challenge"
            ) from e
        self.session.refresh(challenge)
        return challenge

    def get(self, challenge_id: int) -> Challenge:
        challenge = self.session.get(Challenge, challenge_id)
        if not challenge:
            raise NotFoundError(f"Challenge {challenge_id} not found")
        return challenge

    def find_active_by_user_and_type(self, user_id: str, challenge_type: ChallengeType) -> Optional[Challenge]:
        return self.session.exec(
            select(Challenge)
            .where(
                (Challenge.user_id == user_id) &
                (Challenge.type == ChallengeType(challenge_type).value) &
                (Challenge.status == ChallengeStatus.ACTIVE.value)
            )
        ).first()

    def find_active_by_user(self, user_id: str) -> List[Challenge]:
        return list(self.session.exec(
            select(Challenge)
            .where(
                (Challenge.user_id == user_id) &
                (Challenge.status == ChallengeStatus.ACTIVE.value)
            )
            .order_by(Challenge.start_date.desc())
        ).all())

    def find_all_by_user(self, user_id: str) -> List[Challenge]:
        # Active first, then most recent first
        return list(self.session.exec(
            select(Challenge)
            .where(Challenge.user_id == user_id)
            .order_by(Challenge.status, Challenge.start_date.desc(), Challenge.challenge_id.desc())
        ).all())

    def count_completed_by_user(self, user_id: str) -> int:
        return self.session.exec(
            select(func.count())
            .select_from(Challenge)
            .where(
                (Challenge.user_id == user_id) &
                (Challenge.status == ChallengeStatus.COMPLETED.value)
            )
        ).one()

    def update(self, challenge: Challenge) -> Challenge:
        """Write current_value and status back with a compare-and-swap on version.

        Only rows that are still active in storage can be written, so a
        terminal challenge is never modified again.
        """
        expected_version = challenge.version
        current_value, status = challenge.current_value, challenge.status
        with self.session.no_autoflush:
            # Pending attribute changes go through the guarded UPDATE, never a plain flush
            self.session.expire(challenge, ["current_value", "status"])
            result = self.session.exec(
                update(Challenge)
                .where(
                    (Challenge.challenge_id == challenge.challenge_id) &
                    (Challenge.version == expected_version) &
                    (Challenge.status == ChallengeStatus.ACTIVE.value)
                )
                .values(
                    current_value=current_value,
                    status=status,
                    version=expected_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
        if result.rowcount != 1:
            self.session.rollback()
            raise ConflictError(
                f"Challenge {challenge.challenge_id} was modified concurrently (version {expected_version})"
            )
        self.session.commit()
        self.session.refresh(challenge)
        return challenge

    def reload(self, challenge: Challenge) -> Challenge:
        """Discard in-memory changes and re-read the stored row."""
        self.session.refresh(challenge)
        return challenge

    def rollback(self) -> None:
        """Abandon the current transaction, expiring every loaded row."""
        self.session.rollback()
