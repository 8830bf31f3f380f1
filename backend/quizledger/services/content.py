# backend/quizledger/services/content.py
import logging
import secrets
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from quizledger import crud
from quizledger.core.codec import (
    MAX_NONCE,
    VERIFIER_KEY_SIZE,
    ContentCodec,
    build_codec,
    format_question_payload,
    parse_question_payload,
)
from quizledger.core.config import settings
from quizledger.core.errors import LedgerError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_codec() -> ContentCodec:
    return build_codec(settings.CODEC_CIPHER, settings.CODEC_SECRET)


def new_nonce() -> int:
    return secrets.randbelow(MAX_NONCE) + 1


def new_verifier_key() -> bytes:
    return secrets.token_bytes(VERIFIER_KEY_SIZE)


def encrypt_question(codec: ContentCodec, question: str, choices: List[str], correct_answer: str, nonce: int) -> Tuple[bytes, bytes]:
    """Return (encrypted_content, encrypted_answer) blocks for one question."""
    content = codec.encode(format_question_payload(question, choices), nonce)
    answer = codec.encode(correct_answer.encode("utf-8"), nonce)
    return content, answer


@dataclass
class QuestionView:
    question_index: int
    question: Optional[str] = None
    choices: Optional[List[str]] = None
    error: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def read_questions(db: Session, quiz_set_address: str, codec: Optional[ContentCodec] = None) -> List[QuestionView]:
    """Decode the question side of every block in a quiz set.

    One item per block: a failure to decode or parse one block is reported on
    that item and does not hide the others.
    """
    codec = codec or get_codec()
    views = []
    for block in crud.list_question_blocks(db, quiz_set_address):
        try:
            payload = parse_question_payload(codec.decode(block.encrypted_content, block.nonce))
        except LedgerError as e:
            logger.warning("question %d of quiz set %s unreadable: %s", block.question_index, quiz_set_address[:8], e)
            views.append(QuestionView(question_index=block.question_index, error=e.to_dict()))
            continue
        public = payload.public()
        views.append(QuestionView(question_index=block.question_index, question=public["question"], choices=public["choices"]))
    return views
