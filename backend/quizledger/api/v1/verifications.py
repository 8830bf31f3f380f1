# backend/quizledger/api/v1/verifications.py
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quizledger.core.config import settings
from quizledger.schemas import EngineCallback
from quizledger.services.compute_engine import EngineResult
from quizledger.services.verification import VerificationProtocol, get_protocol

router = APIRouter(prefix="/verifications", tags=["verifications"])

engine_bearer = HTTPBearer(auto_error=False)


def require_engine(credentials: Optional[HTTPAuthorizationCredentials] = Depends(engine_bearer)) -> None:
    """Only the engine holding ENGINE_CALLBACK_SECRET may push results."""
    secret = settings.ENGINE_CALLBACK_SECRET
    if not secret:
        raise HTTPException(status_code=403, detail="Engine callbacks are disabled")
    if credentials is None or not hmac.compare_digest(credentials.credentials.encode(), secret.encode()):
        raise HTTPException(status_code=401, detail="Invalid engine credentials")


@router.post("/callback", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_engine)])
def engine_callback(payload: EngineCallback, protocol: VerificationProtocol = Depends(get_protocol)):
    """Result push from the confidential-compute engine."""
    accepted = protocol.deliver(EngineResult(request_id=payload.requestId, matched=payload.matched))
    return {"request_id": payload.requestId, "accepted": accepted}
