# backend/quizledger/api/v1/scores.py
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quizledger import crud
from quizledger.db.session import get_db
from quizledger.schemas import GlobalLeaderboardEntryOut, QuizHistoryOut, UserScoreOut, UserStatsOut
from quizledger.services import leaderboard

router = APIRouter(tags=["scores"])


@router.get("/scores", response_model=List[UserScoreOut])
def list_user_scores(user: Optional[str] = None, topic: Optional[str] = None, db: Session = Depends(get_db)):
    return crud.list_user_scores(db, user=user, topic_name=topic)


@router.get("/leaderboard", response_model=List[GlobalLeaderboardEntryOut])
def get_global_leaderboard(limit: int = Query(100, ge=1), db: Session = Depends(get_db)):
    return leaderboard.global_leaderboard(db, limit=limit)


@router.get("/users/{user}/history", response_model=List[QuizHistoryOut])
def get_user_history(user: str, limit: int = Query(50, ge=1), db: Session = Depends(get_db)):
    return crud.get_user_history(db, user, limit=limit)


@router.get("/users/{user}/stats", response_model=UserStatsOut)
def get_user_stats(user: str, db: Session = Depends(get_db)):
    return leaderboard.user_stats(db, user)
