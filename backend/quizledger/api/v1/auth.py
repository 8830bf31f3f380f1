# backend/quizledger/api/v1/auth.py
"""
Auth for the ledger API:
- create_access_token and JWT helpers
- get_current_identity dependency (identity = token subject)
- POST /auth/token issues a token for an identity (development only)
"""

from typing import Optional
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

import jwt  # PyJWT

from quizledger.core.config import settings
from quizledger.schemas import TokenRequest, TokenOut

router = APIRouter(prefix="/auth", tags=["auth"])

# Security scheme for extraction
bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(subject: str, expires_minutes: int = None) -> dict:
    """
    Returns token dict: {"access_token": <str>, "token_type": "bearer", "expires_in": <seconds>}
    """
    expires_minutes = expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": str(subject), "exp": expire}
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return {"access_token": token, "token_type": "bearer", "expires_in": int(expires_minutes * 60)}


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """
    FastAPI dependency returning the caller identity from Authorization: Bearer <token>.
    Raises 401 on missing/invalid token.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = jwt.decode(credentials.credentials, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return sub


@router.post("/token", response_model=TokenOut)
def issue_token(req: TokenRequest):
    if not settings.ALLOW_DEV_TOKENS:
        raise HTTPException(status_code=404, detail="Not found")
    return create_access_token(req.identity)
