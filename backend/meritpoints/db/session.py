from __future__ import annotations

from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from meritpoints.core.settings import settings


def _install_sqlite_transactions(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write, so a SAVEPOINT issued first
    # becomes the outermost transaction and RELEASE commits it. Emit BEGIN
    # ourselves so nested savepoints stay inside the session transaction.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")


def build_engine(database_url: str, **overrides: Any) -> Engine:
    engine_kwargs: dict[str, Any] = {
        "pool_pre_ping": True,
        "future": True,
    }
    is_sqlite = make_url(database_url).get_backend_name() == "sqlite"
    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(
            {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_timeout": settings.db_pool_timeout,
                "pool_recycle": settings.db_pool_recycle,
            }
        )
    engine_kwargs.update(overrides)

    engine = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        _install_sqlite_transactions(engine)
    return engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    class_=Session,
    future=True,
)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
