# backend/quizledger/services/verification.py
"""
Answer verification against the confidential-compute engine.

Each verification moves Submitted -> Pending -> Resolved (matched or not) or
Failed. The protocol never decodes the stored answer itself: when the engine
times out or is unavailable the verification fails and nothing is scored.

A quiz attempt verifies every question concurrently and touches the ledger
only after all of them reached a terminal state.
"""
import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from quizledger import crud, models
from quizledger.core.config import settings
from quizledger.core.errors import (
    ComputationTimeout,
    EngineUnavailable,
    IncompleteAttempt,
    IndexOutOfRange,
    LedgerError,
    QuizNotReady,
)
from quizledger.services.compute_engine import (
    ComparisonRequest,
    ComputeEngine,
    EngineResult,
    HttpComputeEngine,
    InProcessEngine,
)
from quizledger.services.content import get_codec

logger = logging.getLogger(__name__)


class VerificationState(str, enum.Enum):
    submitted = "submitted"
    pending = "pending"
    resolved = "resolved"
    failed = "failed"


@dataclass
class Verification:
    question_address: str
    question_index: Optional[int] = None
    state: VerificationState = VerificationState.submitted
    request_id: Optional[str] = None
    matched: Optional[bool] = None
    error: Optional[LedgerError] = None

    @property
    def terminal(self) -> bool:
        return self.state in (VerificationState.resolved, VerificationState.failed)

    def resolve(self, matched: bool):
        self.state = VerificationState.resolved
        self.matched = matched

    def fail(self, error: LedgerError):
        self.state = VerificationState.failed
        self.error = error


@dataclass
class AttemptResult:
    quiz_set_address: str
    user: str
    verifications: List[Verification] = field(default_factory=list)
    settled: bool = False
    score: Optional[int] = None
    total_questions: int = 0
    is_winner: bool = False
    reward_amount: int = 0
    completed_at: Optional[int] = None

    @property
    def failures(self) -> List[Verification]:
        return [v for v in self.verifications if v.state == VerificationState.failed]


def request_for(block: models.QuestionBlock, answer: str) -> ComparisonRequest:
    return ComparisonRequest(
        question_address=block.address,
        ciphertext_block=bytes(block.encrypted_answer),
        plaintext_candidate=answer,
        nonce=block.nonce,
        verifier_key=bytes(block.verifier_key),
    )


class VerificationProtocol:
    def __init__(
        self,
        engine: ComputeEngine,
        timeout: float = None,
        poll_interval: float = None,
        max_workers: int = None,
    ):
        self.engine = engine
        self.timeout = settings.VERIFY_TIMEOUT_SECONDS if timeout is None else timeout
        self.poll_interval = settings.VERIFY_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self._pool = ThreadPoolExecutor(max_workers=max_workers or settings.VERIFY_MAX_WORKERS, thread_name_prefix="verify")
        self._lock = threading.Lock()
        self._events: Dict[str, threading.Event] = {}
        self._delivered: Dict[str, EngineResult] = {}

    # --- single verification ---
    def submit(self, request: ComparisonRequest, question_index: Optional[int] = None) -> Verification:
        verification = Verification(question_address=request.question_address, question_index=question_index)
        try:
            verification.request_id = self.engine.submit(request)
        except EngineUnavailable as e:
            logger.warning("engine rejected verification of %s: %s", request.question_address[:8], e)
            verification.fail(e)
            return verification
        with self._lock:
            self._events.setdefault(verification.request_id, threading.Event())
        verification.state = VerificationState.pending
        logger.debug("verification %s pending for question %s", verification.request_id, question_index)
        return verification

    def deliver(self, result: EngineResult) -> bool:
        """Accept a pushed engine result for an outstanding request.

        Results for ids this protocol never submitted, or already finished
        with, are dropped and False is returned.
        """
        with self._lock:
            event = self._events.get(result.request_id)
            if event is not None:
                self._delivered[result.request_id] = result
        if event is None:
            logger.warning("dropped engine result for unknown or finished request %s", result.request_id)
            return False
        event.set()
        return True

    def _take_delivered(self, request_id: str) -> Optional[EngineResult]:
        with self._lock:
            return self._delivered.pop(request_id, None)

    def _forget(self, request_id: str):
        with self._lock:
            self._events.pop(request_id, None)
            self._delivered.pop(request_id, None)

    def _deadline(self, timeout: Optional[float]) -> float:
        return time.monotonic() + (self.timeout if timeout is None else timeout)

    def wait(self, verification: Verification, timeout: Optional[float] = None, deadline: Optional[float] = None) -> Verification:
        """Block until the verification is terminal or the deadline passes.

        `deadline` is a time.monotonic() value; without one the wait lasts
        `timeout` seconds from now.
        """
        if verification.terminal:
            return verification
        if deadline is None:
            deadline = self._deadline(timeout)
        request_id = verification.request_id
        with self._lock:
            event = self._events.setdefault(request_id, threading.Event())
        try:
            while True:
                result = self._take_delivered(request_id)
                if result is None:
                    try:
                        result = self.engine.poll(request_id)
                    except EngineUnavailable as e:
                        logger.warning("verification %s failed: %s", request_id, e)
                        verification.fail(e)
                        return verification
                if result is not None:
                    verification.resolve(bool(result.matched))
                    logger.info(
                        "verification %s resolved for question %s: %s",
                        request_id, verification.question_index, "matched" if result.matched else "not matched",
                    )
                    return verification
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    verification.fail(ComputationTimeout(f"no result for {request_id} before the deadline"))
                    logger.warning("verification %s timed out", request_id)
                    return verification
                event.wait(min(self.poll_interval, remaining))
                event.clear()
        finally:
            self._forget(request_id)

    def run(
        self,
        request: ComparisonRequest,
        question_index: Optional[int] = None,
        timeout: Optional[float] = None,
        deadline: Optional[float] = None,
    ) -> Verification:
        if deadline is None:
            deadline = self._deadline(timeout)
        if time.monotonic() >= deadline:
            # queued behind other verifications until the attempt ran out of time
            verification = Verification(question_address=request.question_address, question_index=question_index)
            verification.fail(ComputationTimeout(f"question {question_index} was not submitted before the deadline"))
            return verification
        return self.wait(self.submit(request, question_index), deadline=deadline)

    def submit_answer(self, block: models.QuestionBlock, answer: str, timeout: Optional[float] = None) -> Verification:
        return self.run(request_for(block, answer), block.question_index, timeout)

    # --- whole attempts ---
    def verify_all(self, requests: Dict[int, ComparisonRequest], timeout: Optional[float] = None) -> List[Verification]:
        """Verify independent requests concurrently; returns them ordered by index.

        All requests share one deadline, `timeout` seconds from this call.
        """
        deadline = self._deadline(timeout)
        futures = {index: self._pool.submit(self.run, request, index, None, deadline) for index, request in requests.items()}
        return [futures[index].result() for index in sorted(futures)]

    def submit_attempt(
        self,
        db: Session,
        quiz_set_address: str,
        user: str,
        answers: Dict[int, str],
        timeout: Optional[float] = None,
        completed_at: Optional[int] = None,
    ) -> AttemptResult:
        quiz = crud.get_quiz_set(db, quiz_set_address)
        if not quiz.is_initialized:
            raise QuizNotReady(f"quiz set '{quiz.name}' has {quiz.questions_added}/{quiz.question_count} questions")
        expected = set(range(1, quiz.question_count + 1))
        extra = set(answers) - expected
        if extra:
            raise IndexOutOfRange(f"answers given for unknown questions: {sorted(extra)}")
        missing = expected - set(answers)
        if missing:
            raise IncompleteAttempt(f"missing answers for questions {sorted(missing)}")

        # requests are built here so that worker threads never touch the session
        requests = {block.question_index: request_for(block, answers[block.question_index])
                    for block in crud.list_question_blocks(db, quiz_set_address)}
        result = AttemptResult(quiz_set_address=quiz_set_address, user=user, total_questions=quiz.question_count)
        result.verifications = self.verify_all(requests, timeout)

        if result.failures:
            logger.warning(
                "attempt by %s on quiz set %s not scored: %d of %d verifications failed",
                user, quiz_set_address[:8], len(result.failures), len(result.verifications),
            )
            return result

        score = sum(1 for v in result.verifications if v.matched)
        history, became_winner = crud.settle_attempt(db, user, quiz_set_address, score, completed_at)
        result.settled = True
        result.score = score
        result.is_winner = became_winner
        result.reward_amount = history.reward_claimed
        result.completed_at = history.completed_at
        logger.info("attempt by %s on quiz set %s settled: %d/%d", user, quiz_set_address[:8], score, quiz.question_count)
        return result

    def close(self):
        self._pool.shutdown(wait=False)
        self.engine.close()


def build_engine() -> ComputeEngine:
    if settings.ENGINE_MODE == "http":
        return HttpComputeEngine(settings.ENGINE_URL, timeout=settings.ENGINE_HTTP_TIMEOUT_SECONDS)
    if settings.ENGINE_MODE == "inprocess":
        return InProcessEngine(get_codec())
    raise ValueError(f"unknown ENGINE_MODE: {settings.ENGINE_MODE}")


@lru_cache(maxsize=1)
def get_protocol() -> VerificationProtocol:
    return VerificationProtocol(build_engine())
