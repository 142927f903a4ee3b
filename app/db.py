from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from .config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live per connection; share one across threads
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return kwargs
    # Row locks for ledger postings are held for the length of a request
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 3600,
    }


def create_db_engine(url: str):
    return create_engine(url, future=True, pool_pre_ping=True, **_engine_kwargs(url))


engine = create_db_engine(settings.database_url)

# One Session per request; services commit through Store.transaction()
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
