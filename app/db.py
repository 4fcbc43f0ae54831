from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy import event
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.DATABASE_URL
IS_SQLITE = DATABASE_URL.startswith("sqlite")

if IS_SQLITE:
    # Local development only
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=300,
        pool_timeout=30,
        connect_args={"connect_timeout": 10},
    )

    @event.listens_for(engine, "connect")
    def set_statement_timeout(dbapi_connection, connection_record):
        """Bound every statement so a stuck query cannot hold a webhook request open."""
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("SET statement_timeout = '30s'")
        except Exception as e:
            logger.warning(f"Could not set statement timeout: {e}")
        finally:
            cursor.close()


def get_session():
    with Session(engine) as session:
        yield session


def create_db_and_tables():
    # Register table models on the metadata before creating
    import app.models  # noqa: F401

    SQLModel.metadata.create_all(engine)
