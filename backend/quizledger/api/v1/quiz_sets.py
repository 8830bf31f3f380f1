# backend/quizledger/api/v1/quiz_sets.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from quizledger import crud
from quizledger.api.v1.auth import get_current_identity
from quizledger.db.session import get_db
from quizledger.schemas import (
    AnswerSubmit,
    AttemptOut,
    AttemptSubmit,
    ClaimOut,
    CompletionCreate,
    QuestionBlockCreate,
    QuestionBlockOut,
    QuestionViewOut,
    QuizHistoryOut,
    QuizSetCreate,
    QuizSetOut,
    VerificationOut,
)
from quizledger.services import content, vault
from quizledger.services.verification import VerificationProtocol, get_protocol

router = APIRouter(prefix="/quiz-sets", tags=["quiz-sets"])


@router.post("/", response_model=QuizSetOut, status_code=status.HTTP_201_CREATED)
def create_quiz_set(payload: QuizSetCreate, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return crud.create_quiz_set(
        db,
        authority=identity,
        name=payload.name,
        question_count=payload.question_count,
        unique_id=payload.unique_id,
        reward_amount=payload.reward_amount,
        topic_name=payload.topic,
    )


@router.get("/", response_model=List[QuizSetOut])
def list_quiz_sets(authority: Optional[str] = None, topic: Optional[str] = None, db: Session = Depends(get_db)):
    return crud.list_quiz_sets(db, authority=authority, topic_name=topic)


@router.get("/{address}", response_model=QuizSetOut)
def get_quiz_set(address: str, db: Session = Depends(get_db)):
    return crud.get_quiz_set(db, address)


@router.post("/{address}/questions", response_model=QuestionBlockOut, status_code=status.HTTP_201_CREATED)
def add_question_block(
    address: str,
    payload: QuestionBlockCreate,
    identity: str = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    block = crud.add_question_block(
        db,
        caller=identity,
        quiz_set_address=address,
        question_index=payload.question_index,
        encrypted_content=bytes.fromhex(payload.encrypted_content),
        encrypted_answer=bytes.fromhex(payload.encrypted_answer),
        verifier_key=bytes.fromhex(payload.verifier_key),
        nonce=payload.nonce,
    )
    return QuestionBlockOut.from_block(block)


@router.get("/{address}/blocks", response_model=List[QuestionBlockOut])
def list_question_blocks(address: str, db: Session = Depends(get_db)):
    return [QuestionBlockOut.from_block(b) for b in crud.list_question_blocks(db, address)]


@router.get("/{address}/questions", response_model=List[QuestionViewOut])
def read_questions(address: str, db: Session = Depends(get_db)):
    """Question text and choices per block; unreadable blocks carry their own error."""
    return [QuestionViewOut.model_validate(v) for v in content.read_questions(db, address)]


@router.post("/{address}/answers", response_model=VerificationOut)
def submit_answer(
    address: str,
    payload: AnswerSubmit,
    identity: str = Depends(get_current_identity),
    db: Session = Depends(get_db),
    protocol: VerificationProtocol = Depends(get_protocol),
):
    block = crud.get_question_block(db, address, payload.question_index)
    return VerificationOut.from_verification(protocol.submit_answer(block, payload.answer, timeout=payload.timeout))


@router.post("/{address}/attempts", response_model=AttemptOut)
def submit_attempt(
    address: str,
    payload: AttemptSubmit,
    identity: str = Depends(get_current_identity),
    db: Session = Depends(get_db),
    protocol: VerificationProtocol = Depends(get_protocol),
):
    result = protocol.submit_attempt(
        db, address, identity, payload.answers, timeout=payload.timeout, completed_at=payload.completed_at
    )
    return AttemptOut(
        quiz_set_address=result.quiz_set_address,
        user=result.user,
        settled=result.settled,
        score=result.score,
        total_questions=result.total_questions,
        is_winner=result.is_winner,
        reward_amount=result.reward_amount,
        completed_at=result.completed_at,
        verifications=[VerificationOut.from_verification(v) for v in result.verifications],
    )


@router.post("/{address}/completions", response_model=QuizHistoryOut, status_code=status.HTTP_201_CREATED)
def record_completion(
    address: str,
    payload: CompletionCreate,
    identity: str = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return crud.record_completion(
        db,
        user=identity,
        quiz_set_address=address,
        is_winner=payload.is_winner,
        score=payload.score,
        total_questions=payload.total_questions,
        reward_amount=payload.reward_amount,
        completed_at=payload.completed_at,
    )


@router.post("/{address}/claim", response_model=ClaimOut)
def claim_reward(address: str, identity: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    quiz, amount = vault.claim_reward(db, address, identity)
    return ClaimOut(quiz_set_address=quiz.address, claimer=identity, amount=amount, vault_balance=quiz.vault.balance)
