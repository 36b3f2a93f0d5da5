from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from .settings import settings, DB_PATH

_is_sqlite = settings.app_db_url.startswith("sqlite")

if settings.app_db_url == "sqlite:///" + str(DB_PATH):
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    settings.app_db_url,
    connect_args={"check_same_thread": False} if _is_sqlite else {},
    pool_pre_ping=not _is_sqlite,
    pool_recycle=1800,  # Recycle connections every 30 mins to avoid stale links
)

if _is_sqlite:
    @event.listens_for(engine, "connect")
    def _enable_sqlite_fk(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
    pass

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    from . import models  # ensure models are registered
    Base.metadata.create_all(bind=engine)

def drop_required_nulls(model, data: dict) -> dict:
    """Partial updates skip explicit nulls sent for NOT NULL columns."""
    columns = model.__table__.columns
    return {k: v for k, v in data.items() if v is not None or k not in columns or columns[k].nullable}
