"""Database configuration and connection setup"""
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from salon_booking.config.settings import get_settings


@lru_cache()
def get_engine() -> Engine:
    """Create the database engine with connection pooling (built on first use)"""
    settings = get_settings()

    if settings.DATABASE_URL.startswith("sqlite"):
        return create_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            echo=False,
        )

    return create_engine(
        settings.DATABASE_URL,
        poolclass=QueuePool,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        echo=False,
    )


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def SessionLocal():
    """Open a new session bound to the application engine"""
    return get_session_factory()()


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(engine: Engine = None):
    """Create all booking tables that do not exist yet"""
    from salon_booking.models import Base

    Base.metadata.create_all(bind=engine or get_engine())


if __name__ == "__main__":
    create_tables()
    print("Database tables created successfully!")
