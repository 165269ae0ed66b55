# schoolpool/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy (PostgreSQL by default, any SQLAlchemy URL works).
All models are auto-imported here so create_tables() creates every table in one call.

unit_of_work() is the transaction boundary for every schedule mutation:
commit when the block finishes, roll back on any exception, always close.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import declarative_base, sessionmaker
from schoolpool.config import settings
from schoolpool.utils.logger import get_logger

logger = get_logger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,          # Auto-reconnect if DB connection drops
        "pool_size": 10,
        "max_overflow": 20,
        "isolation_level": settings.TRANSACTION_ISOLATION_LEVEL,
    }


def enable_sqlite_savepoints(sqlite_engine):
    """
    pysqlite opens transactions on its own and breaks SAVEPOINT.
    Hand transaction control to SQLAlchemy so begin_nested() works.
    """
    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


engine = create_engine(
    settings.DATABASE_URL,
    echo=False,                  # Set True to log all SQL queries (debug only)
    **_engine_kwargs(settings.DATABASE_URL),
)
if engine.dialect.name == "sqlite":
    enable_sqlite_savepoints(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _apply_statement_timeout(db):
    # SET LOCAL only lasts until the end of the current transaction
    if db.get_bind().dialect.name == "postgresql":
        timeout_ms = int(settings.TRANSACTION_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


@contextmanager
def unit_of_work(session_factory=None):
    """
    Run a block inside one transaction.
    Nothing the block wrote is visible to anyone unless the whole block succeeds.
    """
    db = (session_factory or SessionLocal)()
    try:
        _apply_statement_timeout(db)
        yield db
        db.commit()
    except Exception as e:
        logger.debug(f"Transaction rolled back: {type(e).__name__}: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    # Referenced entities (owned by family/group management)
    from schoolpool.models.group import Group                            # noqa
    from schoolpool.models.user import User                              # noqa
    from schoolpool.models.vehicle import Vehicle                        # noqa
    from schoolpool.models.child import Child                            # noqa
    # Schedule graph
    from schoolpool.models.schedule_slot import ScheduleSlot             # noqa
    from schoolpool.models.vehicle_assignment import VehicleAssignment   # noqa
    from schoolpool.models.child_assignment import ChildAssignment       # noqa

    Base.metadata.create_all(bind=bind or engine)
