# backend/quizledger/core/codec.py
"""
Fixed-size content blocks for question and answer data.

Every block is exactly BLOCK_SIZE bytes: plaintext is zero-padded (or
truncated) to BLOCK_SIZE and combined byte-by-byte with a keystream derived
from the block's nonce. The cipher that produces the keystream is pluggable:

  - Blake2bKeystreamCipher: BLAKE2b(secret || nonce || counter) blocks; every
    bit of the 128-bit nonce changes the keystream. Default.
  - NonceByteCipher: the legacy scheme, which repeats the least-significant
    byte of the nonce. Only for reading blocks written by older clients.

Neither cipher authenticates the block. Deployments that need real
confidentiality plug in an authenticated stream cipher behind the same
interface.
"""

import hashlib
import json
import logging
import struct
from dataclasses import dataclass, field
from typing import List, Optional

from quizledger.core.errors import InvalidBlockSize, InvalidNonce, MalformedContent

logger = logging.getLogger(__name__)

BLOCK_SIZE = 64
VERIFIER_KEY_SIZE = 32
MAX_NONCE = (1 << 128) - 1
DELIMITER = "|"
MIN_DELIMITED_SEGMENTS = 5


def check_nonce(nonce: int) -> int:
    if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0 or nonce > MAX_NONCE:
        raise InvalidNonce(f"nonce must be in [0, 2^128), got {nonce!r}")
    return nonce


class StreamCipher:
    """Produces the keystream combined with a padded block."""

    name = "abstract"

    def keystream(self, nonce: int, length: int) -> bytes:
        raise NotImplementedError


class NonceByteCipher(StreamCipher):
    name = "nonce-byte"

    def keystream(self, nonce: int, length: int) -> bytes:
        return bytes([nonce & 0xFF]) * length


class Blake2bKeystreamCipher(StreamCipher):
    name = "blake2b"

    def __init__(self, secret: bytes = b""):
        # blake2b keys are limited to 64 bytes; longer secrets are pre-hashed
        if len(secret) > 64:
            secret = hashlib.blake2b(secret).digest()
        self._secret = secret

    def keystream(self, nonce: int, length: int) -> bytes:
        nonce_bytes = nonce.to_bytes(16, "little")
        stream = bytearray()
        counter = 0
        while len(stream) < length:
            h = hashlib.blake2b(key=self._secret, digest_size=32)
            h.update(nonce_bytes)
            h.update(struct.pack(">Q", counter))
            stream.extend(h.digest())
            counter += 1
        return bytes(stream[:length])


class ContentCodec:
    def __init__(self, cipher: Optional[StreamCipher] = None):
        self.cipher = cipher or Blake2bKeystreamCipher()

    def pad(self, plaintext: bytes) -> bytes:
        if len(plaintext) > BLOCK_SIZE:
            logger.warning("plaintext of %d bytes truncated to %d", len(plaintext), BLOCK_SIZE)
            plaintext = plaintext[:BLOCK_SIZE]
        return plaintext + b"\x00" * (BLOCK_SIZE - len(plaintext))

    def encode(self, plaintext: bytes, nonce: int) -> bytes:
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        check_nonce(nonce)
        padded = self.pad(plaintext)
        stream = self.cipher.keystream(nonce, BLOCK_SIZE)
        return bytes(a ^ b for a, b in zip(padded, stream))

    def decode(self, block: bytes, nonce: int) -> bytes:
        if len(block) != BLOCK_SIZE:
            raise InvalidBlockSize(f"expected a {BLOCK_SIZE}-byte block, got {len(block)} bytes")
        check_nonce(nonce)
        stream = self.cipher.keystream(nonce, BLOCK_SIZE)
        return bytes(a ^ b for a, b in zip(block, stream)).rstrip(b"\x00")


def build_codec(cipher_name: str, secret: str = "") -> ContentCodec:
    if cipher_name == NonceByteCipher.name:
        return ContentCodec(NonceByteCipher())
    if cipher_name == Blake2bKeystreamCipher.name:
        return ContentCodec(Blake2bKeystreamCipher(secret.encode("utf-8")))
    raise ValueError(f"unknown codec cipher: {cipher_name}")


# -------------------- question payloads --------------------
@dataclass
class QuestionPayload:
    question: str
    choices: List[str] = field(default_factory=list)
    correct_answer: Optional[str] = None

    def public(self) -> dict:
        """Question side only; the correct answer never leaves this object."""
        return {"question": self.question, "choices": list(self.choices)}


def _parse_structured(text: str) -> Optional[QuestionPayload]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    question = data.get("question")
    choices = data.get("choices")
    if not isinstance(question, str) or not isinstance(choices, list):
        return None
    if not all(isinstance(c, str) for c in choices):
        return None
    correct = data.get("correctAnswer")
    return QuestionPayload(question=question, choices=choices, correct_answer=correct if isinstance(correct, str) else None)


def _parse_delimited(text: str) -> Optional[QuestionPayload]:
    segments = text.split(DELIMITER)
    if len(segments) < MIN_DELIMITED_SEGMENTS:
        return None
    return QuestionPayload(question=segments[0], choices=segments[1:])


def parse_question_payload(raw: bytes) -> QuestionPayload:
    """Structured (JSON) first, then `question|c1|c2|c3|c4`."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedContent(f"decoded content is not valid UTF-8: {e}")
    parsed = _parse_structured(text) or _parse_delimited(text)
    if parsed is None:
        raise MalformedContent()
    return parsed


def format_question_payload(question: str, choices: List[str]) -> bytes:
    return DELIMITER.join([question] + list(choices)).encode("utf-8")
