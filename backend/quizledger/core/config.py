# backend/quizledger/core/config.py
import os
from pathlib import Path

try:
    from dotenv import load_dotenv
except Exception as e:
    raise RuntimeError("python-dotenv is required. Run: pip install python-dotenv") from e

ROOT = Path(__file__).resolve().parents[2]  # backend/
# Env files in order of precedence; the first one found wins.
for name in (".env.local", ".env", ".env.example"):
    candidate = ROOT / name
    if candidate.exists():
        load_dotenv(candidate)
        break
# If none exists, we still rely on system environment variables.

_env = os.environ


def _bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


DATABASE_URL = _env.get("DATABASE_URL", "sqlite:///./quizledger.db")

# Auth
JWT_SECRET = _env.get("JWT_SECRET", "dev-jwt-secret-change-me-before-deploying")
JWT_ALGORITHM = _env.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(_env.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
ALLOW_DEV_TOKENS = _bool(_env.get("ALLOW_DEV_TOKENS", "1"))

# Content codec: "blake2b" (keyed keystream) or "nonce-byte" (legacy stored data)
CODEC_CIPHER = _env.get("CODEC_CIPHER", "blake2b")
CODEC_SECRET = _env.get("CODEC_SECRET", "dev-codec-secret-change-me")

# Confidential-compute engine
ENGINE_MODE = _env.get("ENGINE_MODE", "inprocess")  # inprocess | http
ENGINE_URL = _env.get("ENGINE_URL", "http://localhost:8090")
ENGINE_HTTP_TIMEOUT_SECONDS = float(_env.get("ENGINE_HTTP_TIMEOUT_SECONDS", 10))
# shared with the engine; result callbacks must present it as a bearer token
ENGINE_CALLBACK_SECRET = _env.get("ENGINE_CALLBACK_SECRET", "dev-engine-callback-secret-change-me")
VERIFY_TIMEOUT_SECONDS = float(_env.get("VERIFY_TIMEOUT_SECONDS", 30))
VERIFY_POLL_INTERVAL_SECONDS = float(_env.get("VERIFY_POLL_INTERVAL_SECONDS", 0.05))
VERIFY_MAX_WORKERS = int(_env.get("VERIFY_MAX_WORKERS", 8))

LEDGER_MAX_RETRIES = int(_env.get("LEDGER_MAX_RETRIES", 25))

LOG_LEVEL = _env.get("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in _env.get("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]


# The rest of the code expects a Settings object with attributes.
class SimpleSettings:
    DATABASE_URL = DATABASE_URL
    JWT_SECRET = JWT_SECRET
    JWT_ALGORITHM = JWT_ALGORITHM
    ACCESS_TOKEN_EXPIRE_MINUTES = ACCESS_TOKEN_EXPIRE_MINUTES
    ALLOW_DEV_TOKENS = ALLOW_DEV_TOKENS
    CODEC_CIPHER = CODEC_CIPHER
    CODEC_SECRET = CODEC_SECRET
    ENGINE_MODE = ENGINE_MODE
    ENGINE_URL = ENGINE_URL
    ENGINE_HTTP_TIMEOUT_SECONDS = ENGINE_HTTP_TIMEOUT_SECONDS
    ENGINE_CALLBACK_SECRET = ENGINE_CALLBACK_SECRET
    VERIFY_TIMEOUT_SECONDS = VERIFY_TIMEOUT_SECONDS
    VERIFY_POLL_INTERVAL_SECONDS = VERIFY_POLL_INTERVAL_SECONDS
    VERIFY_MAX_WORKERS = VERIFY_MAX_WORKERS
    LEDGER_MAX_RETRIES = LEDGER_MAX_RETRIES
    LOG_LEVEL = LOG_LEVEL
    CORS_ORIGINS = CORS_ORIGINS


settings = SimpleSettings()
