# leaseledger/db.py
from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import settings


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return str(url).startswith("sqlite")


def _install_sqlite_hooks(eng: Engine) -> None:
    """
    SQLite needs two things to behave like the production store:

    - foreign keys are off by default (cascades would silently not run)
    - pysqlite's deferred BEGIN lets two writers both read, then one fails
      on lock upgrade with "database is locked". BEGIN IMMEDIATE takes the
      write lock up front so concurrent procedures serialize instead.

    Taking over BEGIN also makes SAVEPOINT work under pysqlite.
    """

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_conn, _conn_record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(url: str) -> Engine:
    if _is_sqlite(url):
        eng = create_engine(
            url,
            echo=bool(settings.sql_echo),
            future=True,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_hooks(eng)
        return eng

    return create_engine(
        url,
        echo=bool(settings.sql_echo),
        pool_pre_ping=True,
        future=True,
    )


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_db() -> None:
    # models must be imported so every table is registered on Base.metadata
    from . import models  # noqa: F401
    from .services.consistency import create_mismatch_view

    Base.metadata.create_all(bind=engine)
    with engine.begin() as conn:
        create_mismatch_view(conn)


def get_db():
    """
    IMPORTANT (Postgres):
    If any SQL statement fails, the transaction is aborted and the session
    cannot run further statements until a rollback happens.

    This dependency guarantees rollback on exceptions so errors don't cascade
    into "InFailedSqlTransaction" on later queries in the same request.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
