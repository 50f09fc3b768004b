from collections.abc import Generator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings


def build_engine(database_url: str) -> Engine:
    if not database_url.startswith('sqlite'):
        return create_engine(database_url, pool_pre_ping=True)

    engine = create_engine(database_url, pool_pre_ping=True, connect_args={'check_same_thread': False})

    # pysqlite defers BEGIN on its own; take over so SAVEPOINTs behave.
    @event.listens_for(engine, 'connect')
    def _sqlite_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.execute('PRAGMA journal_mode=WAL')
        cursor.close()

    @event.listens_for(engine, 'begin')
    def _sqlite_begin(conn) -> None:
        conn.exec_driver_sql('BEGIN')

    return engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
