import pytest
import requests

from quizledger.core.errors import EngineUnavailable
from quizledger.services.compute_engine import ComparisonRequest, HttpComputeEngine, InProcessEngine

REQUEST = ComparisonRequest(
    question_address="ab" * 32,
    ciphertext_block=b"\x00" * 64,
    plaintext_candidate="4",
    nonce=(1 << 100) + 7,
    verifier_key=b"\x01" * 32,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._text is not None:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, timeout=None, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


def test_submit_posts_request_and_returns_id():
    session = FakeSession(FakeResponse(payload={"requestId": "r-1"}))
    engine = HttpComputeEngine("http://engine/", callback_url="http://ledger/cb", session=session)

    assert engine.submit(REQUEST) == "r-1"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://engine/computations")
    body = kwargs["json"]
    assert body["nonce"] == str((1 << 100) + 7)
    assert body["ciphertextBlock"] == "00" * 64
    assert body["callbackUrl"] == "http://ledger/cb"


def test_poll_states():
    session = FakeSession(
        FakeResponse(payload={"status": "pending"}),
        FakeResponse(payload={"status": "resolved", "matched": True}),
        FakeResponse(payload={"status": "failed", "error": "circuit aborted"}),
    )
    engine = HttpComputeEngine("http://engine", session=session)

    assert engine.poll("r-1") is None
    result = engine.poll("r-1")
    assert (result.request_id, result.matched) == ("r-1", True)
    with pytest.raises(EngineUnavailable, match="circuit aborted"):
        engine.poll("r-1")
    assert session.calls[0][1] == "http://engine/computations/r-1"


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("refused"),
        FakeResponse(status_code=503, payload={}),
        FakeResponse(text="<html>"),
        FakeResponse(payload=["not", "a", "dict"]),
        FakeResponse(payload={"noRequestId": True}),
    ],
)
def test_submit_failures_are_engine_unavailable(response):
    engine = HttpComputeEngine("http://engine", session=FakeSession(response))
    with pytest.raises(EngineUnavailable):
        engine.submit(REQUEST)


def test_resolved_without_boolean_is_rejected():
    engine = HttpComputeEngine("http://engine", session=FakeSession(FakeResponse(payload={"status": "resolved", "matched": "yes"})))
    with pytest.raises(EngineUnavailable):
        engine.poll("r-1")


def test_in_process_engine_reports_undecodable_block(codec):
    engine = InProcessEngine(codec)
    bad = ComparisonRequest("ab" * 32, b"\x00" * 10, "4", 1, b"\x01" * 32)
    request_id = engine.submit(bad)
    engine._pool.shutdown(wait=True)
    with pytest.raises(EngineUnavailable):
        engine.poll(request_id)


def test_in_process_engine_rejects_after_close(codec):
    engine = InProcessEngine(codec)
    engine.close()
    with pytest.raises(EngineUnavailable):
        engine.submit(REQUEST)
