# backend/quizledger/core/errors.py
"""
Error taxonomy for the ledger.

Every failure raised by the store, the codec or the verification protocol is a
LedgerError subclass carrying a stable `code` and a `category`. The API layer
maps categories to HTTP status codes in one place (see main.py).
"""

VALIDATION = "validation"
CONFLICT = "conflict"
AUTHORIZATION = "authorization"
NOT_FOUND = "not_found"
STATE = "state"
EXTERNAL = "external"
CODEC = "codec"


class LedgerError(Exception):
    code = "LedgerError"
    category = STATE
    message = "Ledger operation failed"

    def __init__(self, detail: str = None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code, "category": self.category}


# --- validation ---
class ValidationFailed(LedgerError):
    category = VALIDATION


class EmptyName(ValidationFailed):
    code = "EmptyName"
    message = "Name cannot be empty"


class NameTooLong(ValidationFailed):
    code = "NameTooLong"
    message = "Name too long"


class InvalidQuestionCount(ValidationFailed):
    code = "InvalidQuestionCount"
    message = "Invalid question count"


class InsufficientReward(ValidationFailed):
    code = "InsufficientReward"
    message = "Reward amount is below the topic minimum"


class InvalidUniqueId(ValidationFailed):
    code = "InvalidUniqueId"
    message = "Unique id must be in 0..255"


class InvalidAmount(ValidationFailed):
    code = "InvalidAmount"
    message = "Amount must be a positive integer"


class InvalidBlockSize(ValidationFailed):
    code = "InvalidBlockSize"
    message = "Block has the wrong size"


class InvalidNonce(ValidationFailed):
    code = "InvalidNonce"
    message = "Nonce must be an unsigned 128-bit integer"


class IndexOutOfRange(ValidationFailed):
    code = "IndexOutOfRange"
    message = "Question index out of range"


class IncompleteAttempt(ValidationFailed):
    code = "IncompleteAttempt"
    message = "An answer is required for every question"


# --- conflict ---
class Conflict(LedgerError):
    category = CONFLICT


class AlreadyExists(Conflict):
    code = "AlreadyExists"
    message = "Address already holds data"


class DuplicateIndex(Conflict):
    code = "DuplicateIndex"
    message = "A question block already exists at this index"


class DuplicateNonce(Conflict):
    code = "DuplicateNonce"
    message = "Nonce already used by another question block"


class DuplicateCompletion(Conflict):
    code = "DuplicateCompletion"
    message = "Completion already recorded for this timestamp"


class AlreadyClaimed(Conflict):
    code = "AlreadyClaimed"
    message = "Reward already claimed"


class ConcurrencyConflict(Conflict):
    code = "ConcurrencyConflict"
    message = "Too many concurrent updates, retry later"


# --- authorization ---
class Unauthorized(LedgerError):
    code = "Unauthorized"
    category = AUTHORIZATION
    message = "Caller is not allowed to perform this operation"


# --- lookups / state ---
class NotFound(LedgerError):
    code = "NotFound"
    category = NOT_FOUND
    message = "Entity not found"


class NoWinnerSet(LedgerError):
    code = "NoWinnerSet"
    message = "Quiz set has no winner"


class TopicInactive(LedgerError):
    code = "TopicInactive"
    message = "Topic is not active"


class QuizNotReady(LedgerError):
    code = "QuizNotReady"
    message = "Quiz set is not fully initialized"


class InsufficientFunds(LedgerError):
    code = "InsufficientFunds"
    message = "Balance too low"


# --- external ---
class ExternalFailure(LedgerError):
    category = EXTERNAL


class ComputationTimeout(ExternalFailure):
    code = "ComputationTimeout"
    message = "Confidential computation did not finish in time"


class EngineUnavailable(ExternalFailure):
    code = "EngineUnavailable"
    message = "Confidential-compute engine unavailable"


# --- codec ---
class MalformedContent(LedgerError):
    code = "MalformedContent"
    category = CODEC
    message = "Decoded content is neither structured nor delimiter-joined"
