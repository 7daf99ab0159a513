"""Errors raised by the challenge engine.

Admission and repository errors propagate to the caller. Ledger and storage
errors raised on one challenge during a refresh pass are collected as
``RefreshFailure`` records so that one failing challenge never aborts the rest
of the pass.
"""
from dataclasses import dataclass, field
from typing import List, Optional


class ChallengeError(Exception):
    """Base class for every error raised by the engine."""


class InvalidInputError(ChallengeError, ValueError):
    """Malformed user id or challenge type, rejected before any I/O."""


class AlreadyActiveError(ChallengeError):
    def __init__(self, user_id: str, challenge_type: str):
        self.user_id = user_id
        self.challenge_type = challenge_type
        super().__init__(f"User {user_id} already has an active {challenge_type} challenge")


class LedgerUnavailableError(ChallengeError):
    """A ledger query failed or timed out."""


class ConflictError(ChallengeError):
    """A repository write lost a concurrency race."""


class DuplicateActiveError(ConflictError):
    """Insert rejected by the one-active-challenge-per-type unique index."""


class StorageError(ChallengeError):
    """The challenge store rejected or failed a write."""


class NotFoundError(ChallengeError):
    pass


@dataclass
class RefreshFailure:
    challenge_id: Optional[int]
    challenge_type: str
    error: ChallengeError

    @property
    def message(self) -> str:
        return str(self.error)


@dataclass
class RefreshResult:
    challenges: list = field(default_factory=list)
    errors: List[RefreshFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
