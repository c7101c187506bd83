from collections.abc import Generator, Iterable, Mapping
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings

DATABASE_URL = settings.database_url


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Worker thread and test helpers share file-backed SQLite databases
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base with proper typing."""

    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_if_absent(
    db: Session,
    model: type[Base],
    values: Mapping[str, Any],
    conflict_columns: Iterable[str],
    returning: Any = None,
):
    """
    Insert one row unless a row with the same conflict key already exists.

    Emits ``INSERT ... ON CONFLICT (...) DO NOTHING`` for the bound dialect, so
    a duplicate is a normal, non-exceptional outcome and the surrounding
    transaction stays usable.

    Returns:
        The inserted value of ``returning`` (or None when the row already
        existed) if ``returning`` is given, otherwise True when a row was
        inserted and False when it was skipped.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = postgresql.insert(model)
    elif dialect == "sqlite":
        stmt = sqlite.insert(model)
    else:
        raise NotImplementedError(f"insert_if_absent is not supported on {dialect}")

    stmt = stmt.values(**values).on_conflict_do_nothing(
        index_elements=list(conflict_columns)
    )

    if returning is not None:
        return db.execute(stmt.returning(returning)).scalar_one_or_none()

    result = db.execute(stmt)
    return result.rowcount == 1
