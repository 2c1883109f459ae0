"""Database session management"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from newsdesk.models.base import Base
from newsdesk.core.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # SQLite sessions are shared between the request thread and the dispatch worker
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


# Create engine
engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency for FastAPI endpoints"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database (create all tables)"""
    import newsdesk.models  # noqa: F401  registers every model with Base.metadata
    Base.metadata.create_all(bind=engine)
