# backend/quizledger/services/vault.py
import logging
from typing import Tuple

from sqlalchemy.orm import Session

from quizledger import crud, models
from quizledger.core.errors import AlreadyClaimed, NoWinnerSet, NotFound, Unauthorized

logger = logging.getLogger(__name__)


def get_vault(db: Session, quiz_set_address: str) -> models.Vault:
    quiz = crud.get_quiz_set(db, quiz_set_address)
    if quiz.vault is None:
        raise NotFound(f"quiz set {quiz_set_address} has no vault")
    return quiz.vault


def claim_reward(db: Session, quiz_set_address: str, claimer: str) -> Tuple[models.QuizSet, int]:
    """Pay the whole vault balance to the quiz winner, exactly once.

    Returns the quiz set and the amount paid.
    """

    def op():
        quiz = db.get(models.QuizSet, quiz_set_address, with_for_update=True)
        if quiz is None:
            raise NotFound(f"quiz set {quiz_set_address} not found")
        if quiz.winner is None:
            raise NoWinnerSet()
        if claimer != quiz.winner:
            raise Unauthorized("only the winner can claim the reward")
        if quiz.is_reward_claimed:
            raise AlreadyClaimed()
        vault = quiz.vault
        amount = vault.balance
        vault.balance = 0
        quiz.is_reward_claimed = True
        account = db.get(models.Account, claimer, with_for_update=True)
        if account is None:
            account = models.Account(identity=claimer, balance=amount)
            db.add(account)
        else:
            account.balance += amount
        return quiz, amount

    quiz, amount = crud.run_atomic(db, op, on_integrity_error=lambda: None, label="claim_reward")
    logger.info("reward of %d from quiz set %s paid to %s", amount, quiz_set_address[:8], claimer)
    return quiz, amount
