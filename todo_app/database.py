from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, pool_size: int = 10, max_overflow: int = 0) -> Engine:
    """Create the process-wide engine; its pool bounds concurrent DB access."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
        )

    options = {"connect_args": {"check_same_thread": False}}  # Needed for SQLite in multi-threaded FastAPI
    if url.database not in (None, "", ":memory:"):
        options.update(pool_size=pool_size, max_overflow=max_overflow)
    engine = create_engine(url, **options)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """Yield a database session and make sure it is always closed.

    Repository functions are responsible for commit / rollback explicitly.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
