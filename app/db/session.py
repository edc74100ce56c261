from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.settings import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # sync routes run in the threadpool, not the creating thread
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)
