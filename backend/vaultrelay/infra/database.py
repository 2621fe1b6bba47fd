# vaultrelay/infra/database.py

import logging

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vaultrelay.models.base import Base

logger = logging.getLogger(__name__)

# =========================
# ENGINE CONFIGURATION
# =========================

def create_db_engine(database_url: str):
    """
    SQLite (the default, in-memory) needs a single shared connection so every
    request thread sees the same tables; other backends get a regular pool.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Check connections before using them
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        echo=False,
    )


class Database:
    """Engine plus session factory, owned by one app instance."""

    def __init__(self, database_url: str):
        self.engine = create_db_engine(database_url)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )

    def init_db(self):
        """Create all tables for registered models."""
        # Import models here to register them with Base
        from vaultrelay.models.user import User  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables created")

    def test_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database connection failed: {e}")
            return False

    def dispose(self):
        self.engine.dispose()


# =========================
# FASTAPI DEPENDENCY
# =========================

def get_db(request: Request):
    """
    FastAPI dependency to provide a DB session to routes.
    Usage:
        def my_route(db: Session = Depends(get_db)):
            ...
    """
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()
