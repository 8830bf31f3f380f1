import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from quizledger import crud
from quizledger.api.v1.auth import create_access_token
from quizledger.db.session import Base, get_db, make_engine
from quizledger.main import app
from quizledger.services.compute_engine import InProcessEngine
from quizledger.services.content import encrypt_question, get_codec, new_verifier_key
from quizledger.services.verification import VerificationProtocol, get_protocol

# a file database: worker threads each open their own connection
@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def codec():
    return get_codec()


@pytest.fixture
def protocol(codec):
    p = VerificationProtocol(InProcessEngine(codec), timeout=5, poll_interval=0.01, max_workers=4)
    yield p
    p.close()


@pytest.fixture
def build_quiz(db, codec):
    """Fund `authority`, create a quiz set and add one block per (question, choices, answer)."""
    nonces = iter(range(1000, 100000))

    def _build(authority, questions, unique_id=0, reward=0, topic=None, name="Quiz"):
        if reward:
            crud.deposit(db, authority, reward)
        quiz = crud.create_quiz_set(
            db, authority, name, len(questions), unique_id, reward, topic_name=topic
        )
        for index, (question, choices, answer) in enumerate(questions, start=1):
            nonce = next(nonces)
            content, encrypted_answer = encrypt_question(codec, question, choices, answer, nonce)
            crud.add_question_block(
                db, authority, quiz.address, index, content, encrypted_answer, new_verifier_key(), nonce
            )
        return crud.get_quiz_set(db, quiz.address)

    return _build


ARITHMETIC = [
    ("2+2?", ["3", "4", "5", "6"], "4"),
    ("3*3?", ["6", "9", "12", "15"], "9"),
    ("10-7?", ["1", "2", "3", "4"], "3"),
]


@pytest.fixture
def arithmetic():
    return list(ARITHMETIC)


@pytest.fixture
def client(session_factory, protocol):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_protocol] = lambda: protocol
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth():
    def _headers(identity):
        return {"Authorization": f"Bearer {create_access_token(identity)['access_token']}"}

    return _headers
