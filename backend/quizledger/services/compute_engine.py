# backend/quizledger/services/compute_engine.py
"""
Clients for the confidential-compute engine.

The engine receives an answer-comparison request (ciphertext block, the
participant's plaintext candidate, nonce and verifier key) and eventually
reports only whether the candidate matched. Two implementations:

  - HttpComputeEngine: talks to a remote engine over JSON/HTTP.
  - InProcessEngine: a local engine for development and tests. It owns the
    codec secret and is the only component allowed to decode answer blocks.
"""
import hmac
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from quizledger.core.codec import ContentCodec
from quizledger.core.errors import EngineUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonRequest:
    question_address: str
    ciphertext_block: bytes
    plaintext_candidate: str
    nonce: int
    verifier_key: bytes

    def to_json(self) -> dict:
        return {
            "questionAddress": self.question_address,
            "ciphertextBlock": self.ciphertext_block.hex(),
            "plaintextCandidate": self.plaintext_candidate,
            # u128 does not fit a JSON number safely
            "nonce": str(self.nonce),
            "verifierKey": self.verifier_key.hex(),
        }


@dataclass(frozen=True)
class EngineResult:
    request_id: str
    matched: bool


class ComputeEngine:
    """submit() returns a request id; poll() returns None while pending."""

    def submit(self, request: ComparisonRequest) -> str:
        raise NotImplementedError

    def poll(self, request_id: str) -> Optional[EngineResult]:
        # push-only engines deliver through VerificationProtocol.deliver()
        return None

    def close(self) -> None:
        pass


# -------------------- HTTP engine --------------------
class HttpComputeEngine(ComputeEngine):
    def __init__(self, base_url: str, timeout: float = 10.0, callback_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.callback_url = callback_url
        self.session = session or requests.Session()

    def _call(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as e:
            raise EngineUnavailable(f"engine call {method} {path} failed: {e}")
        except ValueError as e:
            raise EngineUnavailable(f"engine returned invalid JSON for {method} {path}: {e}")
        if not isinstance(data, dict):
            raise EngineUnavailable(f"engine returned unexpected payload for {method} {path}")
        return data

    def submit(self, request: ComparisonRequest) -> str:
        payload = request.to_json()
        if self.callback_url:
            payload["callbackUrl"] = self.callback_url
        data = self._call("POST", "/computations", json=payload)
        request_id = data.get("requestId")
        if not request_id:
            raise EngineUnavailable("engine did not return a requestId")
        return str(request_id)

    def poll(self, request_id: str) -> Optional[EngineResult]:
        data = self._call("GET", f"/computations/{request_id}")
        status = data.get("status")
        if status == "pending":
            return None
        if status == "resolved":
            matched = data.get("matched")
            if not isinstance(matched, bool):
                raise EngineUnavailable(f"engine resolved {request_id} without a boolean result")
            return EngineResult(request_id=request_id, matched=matched)
        raise EngineUnavailable(f"computation {request_id} failed: {data.get('error') or status}")

    def close(self) -> None:
        self.session.close()


# -------------------- in-process engine --------------------
class InProcessEngine(ComputeEngine):
    """Runs comparisons on a local worker pool.

    `delay` simulates engine latency. Results are kept until polled once.
    """

    def __init__(self, codec: ContentCodec, delay: float = 0.0, max_workers: int = 4):
        self._codec = codec
        self._delay = delay
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="engine")
        self._results: Dict[str, EngineResult] = {}
        self._failures: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _compare(self, request_id: str, request: ComparisonRequest) -> None:
        if self._delay:
            time.sleep(self._delay)
        try:
            expected = self._codec.decode(request.ciphertext_block, request.nonce)
            # the candidate goes through the same padding as the stored answer
            candidate = self._codec.pad(request.plaintext_candidate.encode("utf-8")).rstrip(b"\x00")
            matched = hmac.compare_digest(expected, candidate)
        except Exception as e:
            logger.warning("computation %s failed: %s", request_id, e)
            with self._lock:
                self._failures[request_id] = str(e)
            return
        with self._lock:
            self._results[request_id] = EngineResult(request_id=request_id, matched=matched)

    def submit(self, request: ComparisonRequest) -> str:
        request_id = uuid.uuid4().hex
        try:
            self._pool.submit(self._compare, request_id, request)
        except RuntimeError as e:
            raise EngineUnavailable(f"engine is shut down: {e}")
        return request_id

    def poll(self, request_id: str) -> Optional[EngineResult]:
        with self._lock:
            error = self._failures.pop(request_id, None)
            result = self._results.pop(request_id, None)
        if error is not None:
            raise EngineUnavailable(f"computation {request_id} failed: {error}")
        return result

    def close(self) -> None:
        self._pool.shutdown(wait=False)
