from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from ..config import LEDGER_TIMEOUT_SECONDS
from ..database import get_session
from ..errors import AlreadyActiveError, ConflictError, InvalidInputError, LedgerUnavailableError
from ..models.challenge import Challenge, ChallengeStatus, ChallengeTemplate, ChallengeType
from ..services.challenges import ChallengeService
from ..services.ledger import SqlLedger
from ..services.repository import ChallengeRepository
from ..services.strategies import get_strategy

router = APIRouter(
    prefix="/users/{user_id}/challenges",
    tags=["Challenges"]
)


def get_challenge_service(session: Session = Depends(get_session)) -> ChallengeService:
    return ChallengeService(ChallengeRepository(session), SqlLedger(session.get_bind()))


class ChallengeProgress(BaseModel):
    percent: float
    label: str
    over_budget: bool = False

class ChallengePublic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    challenge_id: int
    user_id: str
    type: ChallengeType
    title: str
    description: Optional[str]
    start_date: datetime
    end_date: datetime
    target_value: float
    current_value: float
    status: ChallengeStatus
    meta: dict = Field(alias="metadata")
    progress: ChallengeProgress

class RefreshErrorPublic(BaseModel):
    challenge_id: Optional[int]
    type: ChallengeType
    detail: str

class ChallengesListResponse(BaseModel):
    challenges: List[ChallengePublic]
    errors: List[RefreshErrorPublic]

class ChallengeJoin(BaseModel):
    type: str

class ChallengeStatsResponse(BaseModel):
    completed: int


def to_public(challenge: Challenge) -> ChallengePublic:
    return ChallengePublic(
        challenge_id=challenge.challenge_id,
        user_id=challenge.user_id,
        type=challenge.type,
        title=challenge.title,
        description=challenge.description,
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        target_value=challenge.target_value,
        current_value=challenge.current_value,
        status=challenge.status,
        meta=challenge.meta or {},
        progress=get_strategy(challenge.type).progress(challenge),
    )


@router.get("", response_model=ChallengesListResponse)
def list_challenges(
    user_id: str,
    service: ChallengeService = Depends(get_challenge_service)
):
    try:
        result = service.list_with_refresh(user_id, timeout=LEDGER_TIMEOUT_SECONDS)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "challenges": [to_public(c) for c in result.challenges],
        "errors": [
            {"challenge_id": f.challenge_id, "type": f.challenge_type, "detail": f.message}
            for f in result.errors
        ]
    }


@router.post("", response_model=ChallengePublic, status_code=201)
def join_challenge(
    user_id: str,
    request: ChallengeJoin,
    service: ChallengeService = Depends(get_challenge_service)
):
    try:
        challenge = service.join(user_id, request.type, timeout=LEDGER_TIMEOUT_SECONDS)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AlreadyActiveError:
        raise HTTPException(status_code=409, detail="You already have this challenge active")
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LedgerUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return to_public(challenge)


@router.get("/available", response_model=List[ChallengeTemplate])
def list_available_challenges(
    user_id: str,
    service: ChallengeService = Depends(get_challenge_service)
):
    try:
        return service.available(user_id)
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/stats", response_model=ChallengeStatsResponse)
def get_challenge_stats(
    user_id: str,
    service: ChallengeService = Depends(get_challenge_service)
):
    try:
        return {"completed": service.completed_count(user_id)}
    except InvalidInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
