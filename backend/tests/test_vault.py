from concurrent.futures import ThreadPoolExecutor

import pytest

from quizledger import crud
from quizledger.core.errors import AlreadyClaimed, NotFound, NoWinnerSet, Unauthorized
from quizledger.services import vault


@pytest.fixture
def funded_quiz(db):
    crud.deposit(db, "alice", 1000)
    return crud.create_quiz_set(db, "alice", "Quiz", 1, 0, 1000)


def test_claim_flow(db, funded_quiz):
    address = funded_quiz.address
    assert vault.get_vault(db, address).balance == 1000
    assert crud.get_account(db, "alice").balance == 0

    with pytest.raises(NoWinnerSet):
        vault.claim_reward(db, address, "bob")

    crud.settle_attempt(db, "bob", address, 1, completed_at=10)
    with pytest.raises(Unauthorized):
        vault.claim_reward(db, address, "carol")

    quiz, amount = vault.claim_reward(db, address, "bob")
    assert amount == 1000
    assert quiz.is_reward_claimed is True
    assert vault.get_vault(db, address).balance == 0
    assert crud.get_account(db, "bob").balance == 1000

    with pytest.raises(AlreadyClaimed):
        vault.claim_reward(db, address, "bob")
    assert crud.get_account(db, "bob").balance == 1000


def test_claim_unknown_quiz(db):
    with pytest.raises(NotFound):
        vault.claim_reward(db, "ab" * 32, "bob")


def test_concurrent_claims_pay_once(session_factory, db, funded_quiz):
    address = funded_quiz.address
    crud.settle_attempt(db, "bob", address, 1, completed_at=10)

    def claim(_):
        session = session_factory()
        try:
            return vault.claim_reward(session, address, "bob")[1]
        except AlreadyClaimed:
            return None
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        paid = [amount for amount in pool.map(claim, range(6)) if amount is not None]

    assert paid == [1000]
    db.expire_all()
    assert crud.get_account(db, "bob").balance == 1000
    assert vault.get_vault(db, address).balance == 0
