# storefront/db/session.py
from sqlalchemy import MetaData, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront.core.config import settings

# SQLite requires special connect args for multi-thread access.
connect_args = {}
if settings.is_sqlite:
    connect_args = {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


def get_db():
    """Yield a sync Session for migrations and maintenance scripts."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
