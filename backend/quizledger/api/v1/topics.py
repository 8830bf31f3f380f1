# backend/quizledger/api/v1/topics.py
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from quizledger import crud
from quizledger.api.v1.auth import get_current_identity
from quizledger.db.session import get_db
from quizledger.schemas import (
    LeaderboardEntryOut,
    TopicCreate,
    TopicOut,
    TopicStatsOut,
    TopicStatusIn,
    TopicTransfer,
)
from quizledger.services import leaderboard

router = APIRouter(prefix="/topics", tags=["topics"])


@router.post("/", response_model=TopicOut, status_code=status.HTTP_201_CREATED)
def create_topic(payload: TopicCreate, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return crud.create_topic(
        db,
        name=payload.name,
        owner=identity,
        min_question_count=payload.min_question_count,
        min_reward_amount=payload.min_reward_amount,
    )


@router.get("/", response_model=List[TopicOut])
def list_topics(active_only: bool = False, db: Session = Depends(get_db)):
    return crud.list_topics(db, active_only=active_only)


# declared before /{name} so "stats" is not taken for a topic name
@router.get("/stats", response_model=List[TopicStatsOut])
def get_topic_stats(top: int = Query(3, ge=1), db: Session = Depends(get_db)):
    return leaderboard.topic_stats(db, top=top)


@router.get("/{name}", response_model=TopicOut)
def get_topic(name: str, db: Session = Depends(get_db)):
    return crud.get_topic(db, name)


@router.post("/{name}/transfer", response_model=TopicOut)
def transfer_topic(name: str, payload: TopicTransfer, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return crud.transfer_topic_ownership(db, name, caller=identity, new_owner=payload.new_owner)


@router.post("/{name}/status", response_model=TopicOut)
def set_topic_status(name: str, payload: TopicStatusIn, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return crud.set_topic_status(db, name, caller=identity, is_active=payload.is_active)


@router.get("/{name}/leaderboard", response_model=List[LeaderboardEntryOut])
def get_topic_leaderboard(name: str, limit: int = Query(100, ge=1), db: Session = Depends(get_db)):
    return leaderboard.topic_leaderboard(db, name, limit=limit)
