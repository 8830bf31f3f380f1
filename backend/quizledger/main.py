# backend/quizledger/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizledger.api.v1 import accounts, auth, quiz_sets, scores, topics, verifications
from quizledger.core import errors
from quizledger.core.config import settings

# import DB Base so we can create tables on startup
from quizledger.db.session import Base, engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    errors.VALIDATION: 422,
    errors.CONFLICT: 409,
    errors.AUTHORIZATION: 403,
    errors.NOT_FOUND: 404,
    errors.STATE: 409,
    errors.EXTERNAL: 503,
    errors.CODEC: 422,
}

app = FastAPI(title="QuizLedger - confidential quiz ledger")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def status_for(exc: errors.LedgerError) -> int:
    if isinstance(exc, errors.ComputationTimeout):
        return 504
    return STATUS_BY_CATEGORY.get(exc.category, 400)


@app.exception_handler(errors.LedgerError)
async def ledger_error_handler(request: Request, exc: errors.LedgerError):
    code = status_for(exc)
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=code, content=exc.to_dict())


@app.exception_handler(Exception)
async def all_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception during %s %s", request.method, request.url.path)
    # Return a sanitized error message to the client
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "error": str(exc)})


# include routers under /api/v1
app.include_router(auth.router, prefix="/api/v1")
app.include_router(accounts.router, prefix="/api/v1")
app.include_router(topics.router, prefix="/api/v1")
app.include_router(quiz_sets.router, prefix="/api/v1")
app.include_router(scores.router, prefix="/api/v1")
app.include_router(verifications.router, prefix="/api/v1")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.on_event("startup")
def startup_event():
    # Create ledger tables if they don't exist (good for local/dev)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/checked.")
