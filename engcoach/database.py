from collections.abc import Callable
from contextlib import AbstractContextManager

from sqlmodel import Session, SQLModel, create_engine

from engcoach.config import get_settings

DATABASE_URL = get_settings().DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better read performance
    with engine.connect() as _conn:
        _conn.exec_driver_sql("PRAGMA journal_mode=WAL")
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionFactory = Callable[[], AbstractContextManager[Session]]


def create_db_and_tables() -> None:
    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def open_session() -> Session:
    return Session(engine)


def get_session_factory() -> SessionFactory:
    """Workout-session controllers outlive a request, so they open their own sessions."""
    return open_session
