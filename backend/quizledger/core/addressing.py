# backend/quizledger/core/addressing.py
import hashlib
import struct
from typing import Iterable, Union

# Bumped whenever the byte layout fed to the hash changes. Stored addresses
# are only comparable within one layout version.
SEED_LAYOUT_VERSION = 1
_DOMAIN = b"quizledger/address"

MAX_SEED_LEN = 32

Seed = Union[bytes, str]


def _seed_bytes(part: Seed) -> bytes:
    if isinstance(part, bytes):
        return part
    if isinstance(part, str):
        return part.encode("utf-8")
    raise TypeError(f"seed parts must be bytes or str, got {type(part).__name__}")


def derive(namespace: str, parts: Iterable[Seed]) -> str:
    """Map a namespace and ordered seed parts to a stable 64-char hex address.

    Each component is length-prefixed before hashing, so ("ab", "c") and
    ("a", "bc") never collide. No state is read or written.
    """
    h = hashlib.sha256()
    h.update(_DOMAIN)
    h.update(bytes([SEED_LAYOUT_VERSION]))
    ns = namespace.encode("utf-8")
    h.update(struct.pack(">H", len(ns)))
    h.update(ns)
    for part in parts:
        raw = _seed_bytes(part)
        h.update(struct.pack(">H", len(raw)))
        h.update(raw)
    return h.hexdigest()


def u8(value: int) -> bytes:
    return struct.pack("<B", value)


def i64(value: int) -> bytes:
    return struct.pack("<q", value)


def ref(address: str) -> bytes:
    """Seed bytes for another entity's address."""
    return bytes.fromhex(address)


# Canonical seed layouts, one per entity kind.

def topic_address(name: str) -> str:
    return derive("topic", [name])


def quiz_set_address(authority: str, unique_id: int) -> str:
    return derive("quiz_set", [authority, u8(unique_id)])


def question_block_address(quiz_set: str, question_index: int) -> str:
    return derive("question_block", [ref(quiz_set), u8(question_index)])


def vault_address(quiz_set: str) -> str:
    return derive("vault", [ref(quiz_set)])


def user_score_address(user: str, topic: str) -> str:
    return derive("user_score", [user, ref(topic)])


def quiz_history_address(user: str, quiz_set: str, completed_at: int) -> str:
    return derive("quiz_history", [user, ref(quiz_set), i64(completed_at)])
