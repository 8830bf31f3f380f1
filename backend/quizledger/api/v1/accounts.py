# backend/quizledger/api/v1/accounts.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizledger import crud
from quizledger.api.v1.auth import get_current_identity
from quizledger.db.session import get_db
from quizledger.schemas import AccountOut, DepositIn

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("/deposit", response_model=AccountOut)
def deposit(payload: DepositIn, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return crud.deposit(db, identity, payload.amount)


@router.get("/{identity}", response_model=AccountOut)
def get_account(identity: str, db: Session = Depends(get_db)):
    return crud.get_account(db, identity)
