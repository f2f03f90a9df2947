"""
Database engine, session factory and declarative base
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import settings


def serialize_sqlite_writers(sqlite_engine: Engine) -> Engine:
    """Make every SQLite transaction take the write lock at BEGIN.

    pysqlite defers BEGIN until the first write, and a connection that read
    first can then fail with "database is locked" instead of waiting. With
    BEGIN IMMEDIATE writers queue on the busy timeout and the guarded
    UPDATEs see each other's committed rows.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # Scanners hit the same rows from several threads; wait on the write lock instead of failing.
    connect_args = {"check_same_thread": False, "timeout": 30}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
if settings.DATABASE_URL.startswith("sqlite"):
    serialize_sqlite_writers(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield a session per request; the route owns commit/rollback"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit everything done inside the block, or nothing"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
