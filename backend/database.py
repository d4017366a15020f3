"""
Engine and session setup for the newsletter store.

DATABASE_URL selects the backend: a local SQLite file by default, Postgres
in deployment.
"""
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./newsletter.db")

# Some hosts still hand out the deprecated postgres:// scheme
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = "postgresql://" + DATABASE_URL[len("postgres://"):]

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# pool_pre_ping drops connections the server closed between scheduler runs
engine = create_engine(DATABASE_URL, connect_args=_connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session, closed once the response is sent."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables. Migrations live in alembic/versions."""
    import db_models  # noqa: F401  registers every table on Base
    Base.metadata.create_all(bind=engine)
