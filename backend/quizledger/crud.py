# backend/quizledger/crud.py
"""
Ledger store: create/read/update operations per entity.

Every mutating operation validates its input before touching the session and
commits exactly once. Counter updates are compare-and-swap on the entity's
`version` column; a lost race (StaleDataError) or an insert race on the same
address (IntegrityError) rolls back and re-runs the whole read-modify-write.
"""
import logging
import random
import time
from typing import Callable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from quizledger import models
from quizledger.core import addressing
from quizledger.core.codec import BLOCK_SIZE, VERIFIER_KEY_SIZE, check_nonce
from quizledger.core.config import settings
from quizledger.core.errors import (
    AlreadyExists,
    ConcurrencyConflict,
    DuplicateCompletion,
    DuplicateIndex,
    DuplicateNonce,
    EmptyName,
    IndexOutOfRange,
    InsufficientFunds,
    InsufficientReward,
    InvalidAmount,
    InvalidBlockSize,
    InvalidQuestionCount,
    InvalidUniqueId,
    NameTooLong,
    NotFound,
    TopicInactive,
    Unauthorized,
)

logger = logging.getLogger(__name__)

TOPIC_NAME_MAX_BYTES = addressing.MAX_SEED_LEN
QUIZ_NAME_MAX_CHARS = 100
MAX_QUESTION_COUNT = 50
DEFAULT_MIN_QUESTION_COUNT = 3
DEFAULT_MIN_REWARD_AMOUNT = 10_000_000  # 0.01 of a 1e9-unit currency
MAX_TIMESTAMP = (1 << 63) - 1
MAX_AMOUNT = (1 << 63) - 1  # BIGINT columns


# -------------------- transaction helper --------------------
def run_atomic(db: Session, op: Callable, on_integrity_error: Optional[Callable] = None, label: str = "ledger op"):
    """Run `op()` and commit, retrying lost compare-and-swap races.

    `on_integrity_error` is called after rollback when the commit hits a
    constraint; it returns the LedgerError to raise, or None to retry.
    """
    for attempt in range(settings.LEDGER_MAX_RETRIES):
        try:
            result = op()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.debug("%s lost a concurrent update (attempt %d), retrying", label, attempt + 1)
        except IntegrityError as e:
            db.rollback()
            err = on_integrity_error() if on_integrity_error else None
            if err is not None:
                raise err from e
            if on_integrity_error is None:
                raise
            logger.debug("%s hit an insert race (attempt %d), retrying", label, attempt + 1)
        except Exception:
            db.rollback()
            raise
        time.sleep(random.uniform(0, 0.005) * (attempt + 1))
    logger.warning("%s gave up after %d attempts", label, settings.LEDGER_MAX_RETRIES)
    raise ConcurrencyConflict(f"{label} could not be applied after {settings.LEDGER_MAX_RETRIES} attempts")


def _check_amount(value, allow_zero: bool = True) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= MAX_AMOUNT or (value == 0 and not allow_zero):
        raise InvalidAmount(f"invalid amount: {value!r}")
    return value


def _check_identity(identity: str, what: str = "identity") -> str:
    if not identity or not identity.strip():
        raise EmptyName(f"{what} cannot be empty")
    if len(identity) > models.IDENTITY_LEN:
        raise NameTooLong(f"{what} too long (max {models.IDENTITY_LEN} characters)")
    return identity


# -------------------- accounts --------------------
def get_account(db: Session, identity: str) -> models.Account:
    account = db.get(models.Account, identity)
    if not account:
        raise NotFound(f"no account for {identity}")
    return account


def deposit(db: Session, identity: str, amount: int) -> models.Account:
    _check_identity(identity)
    _check_amount(amount, allow_zero=False)

    def op():
        account = db.get(models.Account, identity)
        if account is None:
            account = models.Account(identity=identity, balance=amount)
            db.add(account)
        else:
            if account.balance + amount > MAX_AMOUNT:
                raise InvalidAmount(f"deposit would push {identity}'s balance past {MAX_AMOUNT}")
            account.balance += amount
        return account

    account = run_atomic(db, op, on_integrity_error=lambda: None, label="deposit")
    db.refresh(account)
    logger.info("deposited %d to %s (balance %d)", amount, identity, account.balance)
    return account


# -------------------- topics --------------------
def _check_topic_name(name: str) -> str:
    if not name or not name.strip():
        raise EmptyName("Topic name cannot be empty")
    if len(name.encode("utf-8")) > TOPIC_NAME_MAX_BYTES:
        raise NameTooLong(f"Topic name too long (max {TOPIC_NAME_MAX_BYTES} bytes)")
    return name


def get_topic(db: Session, name: str) -> models.Topic:
    _check_topic_name(name)
    topic = db.get(models.Topic, addressing.topic_address(name))
    if not topic:
        raise NotFound(f"topic '{name}' not found")
    return topic


def list_topics(db: Session, active_only: bool = False) -> List[models.Topic]:
    q = db.query(models.Topic)
    if active_only:
        q = q.filter(models.Topic.is_active.is_(True))
    return q.order_by(models.Topic.created_at, models.Topic.name).all()


def create_topic(
    db: Session,
    name: str,
    owner: str,
    min_question_count: int = DEFAULT_MIN_QUESTION_COUNT,
    min_reward_amount: int = DEFAULT_MIN_REWARD_AMOUNT,
) -> models.Topic:
    _check_topic_name(name)
    _check_identity(owner, "owner")
    if not 1 <= min_question_count <= MAX_QUESTION_COUNT:
        raise InvalidQuestionCount(f"min_question_count must be 1-{MAX_QUESTION_COUNT}")
    _check_amount(min_reward_amount)
    address = addressing.topic_address(name)

    def op():
        if db.get(models.Topic, address) is not None:
            raise AlreadyExists(f"topic '{name}' already exists")
        topic = models.Topic(
            address=address,
            name=name,
            owner=owner,
            is_active=True,
            min_question_count=min_question_count,
            min_reward_amount=min_reward_amount,
            total_quizzes=0,
            total_participants=0,
        )
        db.add(topic)
        return topic

    topic = run_atomic(db, op, on_integrity_error=lambda: AlreadyExists(f"topic '{name}' already exists"), label="create_topic")
    logger.info("topic '%s' created by %s at %s", name, owner, address)
    return topic


def transfer_topic_ownership(db: Session, name: str, caller: str, new_owner: str) -> models.Topic:
    _check_identity(new_owner, "new owner")

    def op():
        topic = get_topic(db, name)
        if topic.owner != caller:
            raise Unauthorized("only the topic owner can transfer ownership")
        topic.owner = new_owner
        return topic

    topic = run_atomic(db, op, label="transfer_topic_ownership")
    logger.info("topic '%s' ownership transferred to %s", name, new_owner)
    return topic


def set_topic_status(db: Session, name: str, caller: str, is_active: bool) -> models.Topic:
    def op():
        topic = get_topic(db, name)
        if topic.owner != caller:
            raise Unauthorized("only the topic owner can change its status")
        topic.is_active = is_active
        return topic

    topic = run_atomic(db, op, label="set_topic_status")
    logger.info("topic '%s' is now %s", name, "active" if is_active else "inactive")
    return topic


# -------------------- quiz sets --------------------
def get_quiz_set(db: Session, address: str) -> models.QuizSet:
    quiz = db.get(models.QuizSet, address)
    if not quiz:
        raise NotFound(f"quiz set {address} not found")
    return quiz


def list_quiz_sets(db: Session, authority: Optional[str] = None, topic_name: Optional[str] = None) -> List[models.QuizSet]:
    q = db.query(models.QuizSet)
    if authority:
        q = q.filter(models.QuizSet.authority == authority)
    if topic_name:
        q = q.filter(models.QuizSet.topic_address == addressing.topic_address(topic_name))
    return q.order_by(models.QuizSet.created_at.desc(), models.QuizSet.unique_id).all()


def create_quiz_set(
    db: Session,
    authority: str,
    name: str,
    question_count: int,
    unique_id: int,
    reward_amount: int,
    topic_name: Optional[str] = None,
) -> models.QuizSet:
    _check_identity(authority, "authority")
    if not name or not name.strip():
        raise EmptyName("Quiz set name cannot be empty")
    if len(name) > QUIZ_NAME_MAX_CHARS:
        raise NameTooLong(f"Quiz set name too long (max {QUIZ_NAME_MAX_CHARS} characters)")
    if not 1 <= question_count <= MAX_QUESTION_COUNT:
        raise InvalidQuestionCount(f"Invalid question count (must be 1-{MAX_QUESTION_COUNT})")
    if not 0 <= unique_id <= 255:
        raise InvalidUniqueId()
    _check_amount(reward_amount)

    topic_address = None
    if topic_name is not None:
        topic = get_topic(db, topic_name)
        if not topic.is_active:
            raise TopicInactive(f"topic '{topic_name}' is not active")
        if question_count < topic.min_question_count:
            raise InvalidQuestionCount(
                f"topic '{topic_name}' requires at least {topic.min_question_count} questions"
            )
        if reward_amount < topic.min_reward_amount:
            raise InsufficientReward(
                f"topic '{topic_name}' requires a reward of at least {topic.min_reward_amount}"
            )
        topic_address = topic.address

    address = addressing.quiz_set_address(authority, unique_id)

    def op():
        if db.get(models.QuizSet, address) is not None:
            raise AlreadyExists(f"quiz set with unique id {unique_id} already exists for {authority}")
        if reward_amount > 0:
            account = db.get(models.Account, authority, with_for_update=True)
            if account is None or account.balance < reward_amount:
                raise InsufficientFunds(f"{authority} cannot fund a reward of {reward_amount}")
            account.balance -= reward_amount
        quiz = models.QuizSet(
            address=address,
            authority=authority,
            topic_address=topic_address,
            name=name,
            unique_id=unique_id,
            question_count=question_count,
            questions_added=0,
            is_initialized=False,
            reward_amount=reward_amount,
            correct_answers_count=0,
            is_reward_claimed=False,
        )
        quiz.vault = models.Vault(address=addressing.vault_address(address), balance=reward_amount)
        db.add(quiz)
        if topic_address is not None:
            topic = db.get(models.Topic, topic_address)
            topic.total_quizzes += 1
        return quiz

    def on_integrity_error():
        if db.get(models.QuizSet, address) is not None:
            return AlreadyExists(f"quiz set with unique id {unique_id} already exists for {authority}")
        return None

    quiz = run_atomic(db, op, on_integrity_error=on_integrity_error, label="create_quiz_set")
    logger.info(
        "quiz set '%s' created by %s with %d questions, vault funded with %d",
        name, authority, question_count, reward_amount,
    )
    return quiz


# -------------------- question blocks --------------------
def get_question_block(db: Session, quiz_set_address: str, question_index: int) -> models.QuestionBlock:
    if isinstance(question_index, bool) or not isinstance(question_index, int) or not 1 <= question_index <= MAX_QUESTION_COUNT:
        raise IndexOutOfRange(f"question index must be in 1..{MAX_QUESTION_COUNT}")
    block = db.get(models.QuestionBlock, addressing.question_block_address(quiz_set_address, question_index))
    if not block:
        raise NotFound(f"question {question_index} not found in quiz set {quiz_set_address}")
    return block


def list_question_blocks(db: Session, quiz_set_address: str) -> List[models.QuestionBlock]:
    get_quiz_set(db, quiz_set_address)
    return (
        db.query(models.QuestionBlock)
        .filter(models.QuestionBlock.quiz_set_address == quiz_set_address)
        .order_by(models.QuestionBlock.question_index)
        .all()
    )


def _nonce_taken(db: Session, nonce: int) -> bool:
    return db.query(models.QuestionBlock.address).filter(models.QuestionBlock.nonce == nonce).first() is not None


def add_question_block(
    db: Session,
    caller: str,
    quiz_set_address: str,
    question_index: int,
    encrypted_content: bytes,
    encrypted_answer: bytes,
    verifier_key: bytes,
    nonce: int,
) -> models.QuestionBlock:
    quiz = get_quiz_set(db, quiz_set_address)
    if quiz.authority != caller:
        raise Unauthorized("Unauthorized to modify this quiz set")
    if not 1 <= question_index <= quiz.question_count:
        raise IndexOutOfRange(f"question index must be in 1..{quiz.question_count}")
    if len(encrypted_content) != BLOCK_SIZE or len(encrypted_answer) != BLOCK_SIZE:
        raise InvalidBlockSize(f"encrypted content and answer must be {BLOCK_SIZE} bytes")
    if len(verifier_key) != VERIFIER_KEY_SIZE:
        raise InvalidBlockSize(f"verifier key must be {VERIFIER_KEY_SIZE} bytes")
    check_nonce(nonce)

    address = addressing.question_block_address(quiz_set_address, question_index)

    def op():
        quiz = get_quiz_set(db, quiz_set_address)
        if db.get(models.QuestionBlock, address) is not None:
            raise DuplicateIndex(f"question {question_index} already added")
        if _nonce_taken(db, nonce):
            raise DuplicateNonce()
        block = models.QuestionBlock(
            address=address,
            quiz_set_address=quiz_set_address,
            question_index=question_index,
            encrypted_content=bytes(encrypted_content),
            encrypted_answer=bytes(encrypted_answer),
            verifier_key=bytes(verifier_key),
            nonce=nonce,
        )
        db.add(block)
        quiz.questions_added += 1
        if quiz.questions_added == quiz.question_count:
            quiz.is_initialized = True
        return block

    def on_integrity_error():
        if db.get(models.QuestionBlock, address) is not None:
            return DuplicateIndex(f"question {question_index} already added")
        if _nonce_taken(db, nonce):
            return DuplicateNonce()
        return None

    block = run_atomic(db, op, on_integrity_error=on_integrity_error, label="add_question_block")
    quiz = get_quiz_set(db, quiz_set_address)
    logger.info(
        "question block %d added to quiz set '%s' (%d/%d)",
        question_index, quiz.name, quiz.questions_added, quiz.question_count,
    )
    if quiz.is_initialized:
        logger.info("quiz set '%s' is now initialized", quiz.name)
    return block


# -------------------- completions --------------------
def _check_completion(score: int, total_questions: int, reward_amount: int, completed_at: int):
    if isinstance(total_questions, bool) or not isinstance(total_questions, int) or not 1 <= total_questions <= MAX_QUESTION_COUNT:
        raise InvalidQuestionCount(f"total_questions must be 1-{MAX_QUESTION_COUNT}")
    if isinstance(score, bool) or not isinstance(score, int) or not 0 <= score <= total_questions:
        raise IndexOutOfRange(f"score must be in 0..{total_questions}")
    _check_amount(reward_amount)
    if isinstance(completed_at, bool) or not isinstance(completed_at, int) or not 0 <= completed_at <= MAX_TIMESTAMP:
        raise InvalidAmount(f"timestamp must be an integer in 0..{MAX_TIMESTAMP}")


def _apply_completion(
    db: Session,
    user: str,
    quiz: models.QuizSet,
    is_winner: bool,
    score: int,
    total_questions: int,
    reward_amount: int,
    completed_at: int,
) -> models.QuizHistory:
    history_address = addressing.quiz_history_address(user, quiz.address, completed_at)
    if db.get(models.QuizHistory, history_address) is not None:
        raise DuplicateCompletion(f"completion for {user} at {completed_at} already recorded")

    if quiz.topic_address is not None:
        score_address = addressing.user_score_address(user, quiz.topic_address)
        user_score = db.get(models.UserScore, score_address, with_for_update=True)
        if user_score is None:
            user_score = models.UserScore(
                address=score_address,
                user=user,
                topic_address=quiz.topic_address,
                score=1 if is_winner else 0,
                total_completed=1,
                total_rewards=reward_amount,
                last_activity=completed_at,
            )
            db.add(user_score)
            topic = db.get(models.Topic, quiz.topic_address)
            topic.total_participants += 1
        else:
            user_score.score += 1 if is_winner else 0
            user_score.total_completed += 1
            user_score.total_rewards += reward_amount
            user_score.last_activity = max(user_score.last_activity or 0, completed_at)

    history = models.QuizHistory(
        address=history_address,
        user=user,
        quiz_set_address=quiz.address,
        topic_address=quiz.topic_address,
        completed_at=completed_at,
        score=score,
        total_questions=total_questions,
        is_winner=is_winner,
        reward_claimed=reward_amount,
    )
    db.add(history)
    return history


def _duplicate_completion_check(db: Session, user: str, quiz_set_address: str, completed_at: int):
    def check():
        address = addressing.quiz_history_address(user, quiz_set_address, completed_at)
        if db.get(models.QuizHistory, address) is not None:
            return DuplicateCompletion(f"completion for {user} at {completed_at} already recorded")
        return None
    return check


def record_completion(
    db: Session,
    user: str,
    quiz_set_address: str,
    is_winner: bool,
    score: int,
    total_questions: int,
    reward_amount: int = 0,
    completed_at: Optional[int] = None,
) -> models.QuizHistory:
    """Upsert the user's per-topic score and append one history record.

    The record must agree with the quiz set: its question count, its winner
    and at most its reward, paid only to that winner.
    """
    _check_identity(user, "user")
    completed_at = models.now_ts() if completed_at is None else completed_at
    _check_completion(score, total_questions, reward_amount, completed_at)

    def op():
        quiz = get_quiz_set(db, quiz_set_address)
        if total_questions != quiz.question_count:
            raise InvalidQuestionCount(f"quiz set '{quiz.name}' has {quiz.question_count} questions, not {total_questions}")
        if is_winner and quiz.winner != user:
            raise Unauthorized(f"{user} is not the winner of quiz set '{quiz.name}'")
        if reward_amount > (quiz.reward_amount if is_winner else 0):
            raise InvalidAmount(f"reward {reward_amount} exceeds what quiz set '{quiz.name}' pays this completion")
        return _apply_completion(db, user, quiz, is_winner, score, total_questions, reward_amount, completed_at)

    history = run_atomic(
        db, op,
        on_integrity_error=_duplicate_completion_check(db, user, quiz_set_address, completed_at),
        label="record_completion",
    )
    logger.info("completion recorded for %s on quiz set %s: %d/%d", user, quiz_set_address[:8], score, total_questions)
    return history


def settle_attempt(
    db: Session,
    user: str,
    quiz_set_address: str,
    score: int,
    completed_at: Optional[int] = None,
) -> Tuple[models.QuizHistory, bool]:
    """Apply a fully verified attempt: winner slot, best score and completion in one commit.

    Returns the history record and whether this attempt became the winner.
    """
    _check_identity(user, "user")
    completed_at = models.now_ts() if completed_at is None else completed_at

    def op():
        quiz = get_quiz_set(db, quiz_set_address)
        _check_completion(score, quiz.question_count, 0, completed_at)
        became_winner = score == quiz.question_count and quiz.winner is None
        if became_winner:
            quiz.winner = user
        if score > quiz.correct_answers_count:
            quiz.correct_answers_count = score
        reward = quiz.reward_amount if became_winner else 0
        history = _apply_completion(db, user, quiz, became_winner, score, quiz.question_count, reward, completed_at)
        return history, became_winner

    history, became_winner = run_atomic(
        db, op,
        on_integrity_error=_duplicate_completion_check(db, user, quiz_set_address, completed_at),
        label="settle_attempt",
    )
    if became_winner:
        logger.info("%s is the winner of quiz set %s", user, quiz_set_address[:8])
    return history, became_winner


# -------------------- score reads --------------------
def list_user_scores(db: Session, user: Optional[str] = None, topic_name: Optional[str] = None) -> List[models.UserScore]:
    q = db.query(models.UserScore)
    if user:
        q = q.filter(models.UserScore.user == user)
    if topic_name:
        q = q.filter(models.UserScore.topic_address == addressing.topic_address(topic_name))
    return q.all()


def get_user_history(db: Session, user: str, limit: int = 50) -> List[models.QuizHistory]:
    return (
        db.query(models.QuizHistory)
        .filter(models.QuizHistory.user == user)
        .order_by(models.QuizHistory.completed_at.desc())
        .limit(limit)
        .all()
    )
