# backend/quizledger/models.py
import time
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from quizledger.db.session import Base

ADDRESS_LEN = 64
IDENTITY_LEN = 64


def now_ts() -> int:
    return int(time.time())


class U128(TypeDecorator):
    """Unsigned 128-bit integers stored as decimal strings."""

    impl = String(39)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(int(value))

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class Account(Base):
    __tablename__ = "accounts"

    identity = Column(String(IDENTITY_LEN), primary_key=True)
    balance = Column(BigInteger, nullable=False, default=0)
    created_at = Column(BigInteger, default=now_ts)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Account identity={self.identity} balance={self.balance}>"


class Topic(Base):
    __tablename__ = "topics"

    address = Column(String(ADDRESS_LEN), primary_key=True)
    name = Column(String(32), unique=True, index=True, nullable=False)
    owner = Column(String(IDENTITY_LEN), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    min_question_count = Column(Integer, nullable=False)
    min_reward_amount = Column(BigInteger, nullable=False)
    total_quizzes = Column(Integer, default=0, nullable=False)
    total_participants = Column(Integer, default=0, nullable=False)
    created_at = Column(BigInteger, default=now_ts)
    version = Column(Integer, nullable=False)

    quiz_sets = relationship("QuizSet", back_populates="topic")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Topic name={self.name} owner={self.owner} active={self.is_active}>"


class QuizSet(Base):
    __tablename__ = "quiz_sets"
    __table_args__ = (UniqueConstraint("authority", "unique_id", name="uq_quiz_set_authority_unique_id"),)

    address = Column(String(ADDRESS_LEN), primary_key=True)
    authority = Column(String(IDENTITY_LEN), index=True, nullable=False)
    topic_address = Column(String(ADDRESS_LEN), ForeignKey("topics.address"), index=True, nullable=True)
    name = Column(String(100), nullable=False)
    unique_id = Column(Integer, nullable=False)
    question_count = Column(Integer, nullable=False)
    questions_added = Column(Integer, default=0, nullable=False)
    is_initialized = Column(Boolean, default=False, nullable=False)
    reward_amount = Column(BigInteger, default=0, nullable=False)
    winner = Column(String(IDENTITY_LEN), nullable=True)
    correct_answers_count = Column(Integer, default=0, nullable=False)
    is_reward_claimed = Column(Boolean, default=False, nullable=False)
    created_at = Column(BigInteger, default=now_ts)
    version = Column(Integer, nullable=False)

    topic = relationship("Topic", back_populates="quiz_sets")
    question_blocks = relationship(
        "QuestionBlock",
        back_populates="quiz_set",
        cascade="all, delete-orphan",
        order_by="QuestionBlock.question_index",
    )
    vault = relationship("Vault", back_populates="quiz_set", uselist=False, cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<QuizSet name={self.name} authority={self.authority} {self.questions_added}/{self.question_count}>"


class QuestionBlock(Base):
    __tablename__ = "question_blocks"
    __table_args__ = (UniqueConstraint("quiz_set_address", "question_index", name="uq_question_block_index"),)

    address = Column(String(ADDRESS_LEN), primary_key=True)
    quiz_set_address = Column(String(ADDRESS_LEN), ForeignKey("quiz_sets.address", ondelete="CASCADE"), nullable=False)
    question_index = Column(Integer, nullable=False)
    encrypted_content = Column(LargeBinary(64), nullable=False)
    encrypted_answer = Column(LargeBinary(64), nullable=False)
    verifier_key = Column(LargeBinary(32), nullable=False)
    nonce = Column(U128, unique=True, nullable=False)
    created_at = Column(BigInteger, default=now_ts)

    quiz_set = relationship("QuizSet", back_populates="question_blocks")

    def __repr__(self):
        return f"<QuestionBlock quiz_set={self.quiz_set_address[:8]} index={self.question_index}>"


class Vault(Base):
    __tablename__ = "vaults"

    address = Column(String(ADDRESS_LEN), primary_key=True)
    quiz_set_address = Column(String(ADDRESS_LEN), ForeignKey("quiz_sets.address", ondelete="CASCADE"), unique=True, nullable=False)
    balance = Column(BigInteger, default=0, nullable=False)
    version = Column(Integer, nullable=False)

    quiz_set = relationship("QuizSet", back_populates="vault")

    __mapper_args__ = {"version_id_col": version}


class UserScore(Base):
    __tablename__ = "user_scores"
    __table_args__ = (UniqueConstraint("user", "topic_address", name="uq_user_score_user_topic"),)

    address = Column(String(ADDRESS_LEN), primary_key=True)
    user = Column(String(IDENTITY_LEN), index=True, nullable=False)
    topic_address = Column(String(ADDRESS_LEN), ForeignKey("topics.address"), index=True, nullable=False)
    score = Column(Integer, default=0, nullable=False)
    total_completed = Column(Integer, default=0, nullable=False)
    total_rewards = Column(BigInteger, default=0, nullable=False)
    last_activity = Column(BigInteger, default=now_ts)
    version = Column(Integer, nullable=False)

    topic = relationship("Topic")

    __mapper_args__ = {"version_id_col": version}

    @property
    def win_rate(self) -> float:
        return self.score / self.total_completed if self.total_completed else 0.0


class QuizHistory(Base):
    __tablename__ = "quiz_history"

    address = Column(String(ADDRESS_LEN), primary_key=True)
    user = Column(String(IDENTITY_LEN), index=True, nullable=False)
    quiz_set_address = Column(String(ADDRESS_LEN), index=True, nullable=False)
    topic_address = Column(String(ADDRESS_LEN), nullable=True)
    completed_at = Column(BigInteger, nullable=False)
    score = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False)
    is_winner = Column(Boolean, default=False, nullable=False)
    reward_claimed = Column(BigInteger, default=0, nullable=False)

    def __repr__(self):
        return f"<QuizHistory user={self.user} quiz_set={self.quiz_set_address[:8]} at={self.completed_at}>"
