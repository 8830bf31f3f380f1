# backend/quizledger/schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict


def _hex_bytes(value: str, size: int, what: str) -> bytes:
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        raise ValueError(f"{what} must be hex encoded")
    if len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return raw


class TokenRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=64)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class DepositIn(BaseModel):
    amount: int = Field(gt=0)


class AccountOut(BaseModel):
    identity: str
    balance: int

    model_config = ConfigDict(from_attributes=True)


class TopicCreate(BaseModel):
    name: str
    min_question_count: int = 3
    min_reward_amount: int = 10_000_000


class TopicOut(BaseModel):
    address: str
    name: str
    owner: str
    is_active: bool
    min_question_count: int
    min_reward_amount: int
    total_quizzes: int
    total_participants: int
    created_at: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class TopicTransfer(BaseModel):
    new_owner: str


class TopicStatusIn(BaseModel):
    is_active: bool


class QuizSetCreate(BaseModel):
    name: str
    question_count: int
    unique_id: int
    reward_amount: int = 0
    topic: Optional[str] = None


class QuizSetOut(BaseModel):
    address: str
    authority: str
    topic_address: Optional[str] = None
    name: str
    unique_id: int
    question_count: int
    questions_added: int
    is_initialized: bool
    reward_amount: int
    winner: Optional[str] = None
    correct_answers_count: int
    is_reward_claimed: bool
    created_at: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class QuestionBlockCreate(BaseModel):
    question_index: int
    encrypted_content: str  # hex, 64 bytes
    encrypted_answer: str  # hex, 64 bytes
    verifier_key: str  # hex, 32 bytes
    nonce: int = Field(ge=0)

    @field_validator("encrypted_content", "encrypted_answer")
    @classmethod
    def _block(cls, v: str) -> str:
        _hex_bytes(v, 64, "block")
        return v

    @field_validator("verifier_key")
    @classmethod
    def _key(cls, v: str) -> str:
        _hex_bytes(v, 32, "verifier key")
        return v


class QuestionBlockOut(BaseModel):
    address: str
    quiz_set_address: str
    question_index: int
    encrypted_content: str
    nonce: str
    created_at: Optional[int] = None

    @classmethod
    def from_block(cls, block) -> "QuestionBlockOut":
        # the encrypted answer and verifier key are engine inputs, not client data
        return cls(
            address=block.address,
            quiz_set_address=block.quiz_set_address,
            question_index=block.question_index,
            encrypted_content=bytes(block.encrypted_content).hex(),
            nonce=str(block.nonce),
            created_at=block.created_at,
        )


class QuestionViewOut(BaseModel):
    question_index: int
    ok: bool
    question: Optional[str] = None
    choices: Optional[List[str]] = None
    error: Optional[dict] = None

    model_config = ConfigDict(from_attributes=True)


class AnswerSubmit(BaseModel):
    question_index: int
    answer: str
    timeout: Optional[float] = Field(default=None, gt=0)


class VerificationOut(BaseModel):
    question_index: Optional[int] = None
    question_address: str
    state: str
    request_id: Optional[str] = None
    matched: Optional[bool] = None
    error: Optional[dict] = None

    @classmethod
    def from_verification(cls, v) -> "VerificationOut":
        return cls(
            question_index=v.question_index,
            question_address=v.question_address,
            state=v.state.value,
            request_id=v.request_id,
            matched=v.matched,
            error=v.error.to_dict() if v.error else None,
        )


class AttemptSubmit(BaseModel):
    answers: Dict[int, str]
    timeout: Optional[float] = Field(default=None, gt=0)
    completed_at: Optional[int] = Field(default=None, ge=0)


class AttemptOut(BaseModel):
    quiz_set_address: str
    user: str
    settled: bool
    score: Optional[int] = None
    total_questions: int
    is_winner: bool
    reward_amount: int
    completed_at: Optional[int] = None
    verifications: List[VerificationOut]


class CompletionCreate(BaseModel):
    is_winner: bool
    score: int
    total_questions: int
    reward_amount: int = 0
    completed_at: Optional[int] = None


class QuizHistoryOut(BaseModel):
    address: str
    user: str
    quiz_set_address: str
    topic_address: Optional[str] = None
    completed_at: int
    score: int
    total_questions: int
    is_winner: bool
    reward_claimed: int

    model_config = ConfigDict(from_attributes=True)


class ClaimOut(BaseModel):
    quiz_set_address: str
    claimer: str
    amount: int
    vault_balance: int


class UserScoreOut(BaseModel):
    address: str
    user: str
    topic_address: str
    score: int
    total_completed: int
    total_rewards: int
    last_activity: Optional[int] = None
    win_rate: float

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntryOut(BaseModel):
    user: str
    topic: str
    score: int
    total_completed: int
    total_rewards: int
    last_activity: int
    win_rate: float

    model_config = ConfigDict(from_attributes=True)


class GlobalLeaderboardEntryOut(BaseModel):
    user: str
    total_score: int
    total_completed: int
    total_rewards: int
    win_rate: float
    topics: Dict[str, LeaderboardEntryOut]

    model_config = ConfigDict(from_attributes=True)


class TopicStatsOut(BaseModel):
    name: str
    owner: str
    is_active: bool
    total_quizzes: int
    total_participants: int
    top_performers: List[LeaderboardEntryOut]

    model_config = ConfigDict(from_attributes=True)


class UserStatsOut(BaseModel):
    user: str
    total_score: int
    total_completed: int
    total_rewards: int
    win_rate: float
    topics: List[LeaderboardEntryOut]
    recent_history: List[QuizHistoryOut]


class EngineCallback(BaseModel):
    requestId: str
    matched: bool
