# backend/quizledger/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from quizledger.core.config import settings


def make_engine(url: str, **kwargs):
    """Create an engine; SQLite connections are shared across worker threads."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False, "timeout": 30})
    return create_engine(url, echo=False, future=True, **kwargs)


# Create SQLAlchemy engine from DATABASE_URL
engine = make_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

# Base for models
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
