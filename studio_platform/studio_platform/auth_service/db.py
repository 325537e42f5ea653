from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from .config import get_settings

logger = logging.getLogger(__name__)

SQLALCHEMY_DATABASE_URL = get_settings().DATABASE_URL

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False} if SQLALCHEMY_DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()

def init_db():
    # Import here to avoid circular dependency
    from .models import User, ProgressEntry, AuthEvent  # noqa: F401

    Base.metadata.create_all(bind=engine)

    # The unique constraint on progress_entries backs the atomic add-to-set
    # used by the progress tracker, so refuse to run without it.
    inspector = inspect(engine)
    uniques = [uc["name"] for uc in inspector.get_unique_constraints("progress_entries")]
    if "uq_progress_entry" not in uniques:
        raise RuntimeError("progress_entries is missing constraint uq_progress_entry")

    logger.info("Database initialized: %s", engine.url.render_as_string(hide_password=True))

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
