from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from .config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()

def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

def create_database_engine(database_url: str = None):
    """Create database engine for SQLite (local/tests) or PostgreSQL"""
    url = database_url or settings.database_url

    try:
        if url.startswith("sqlite"):
            options = {"connect_args": {"check_same_thread": False}}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # Single shared connection, otherwise every session sees an empty database
                options["poolclass"] = StaticPool

            engine = create_engine(url, echo=False, **options)
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_engine(
                url,
                pool_pre_ping=True,
                echo=False,
                connect_args={
                    "connect_timeout": 30,
                    "application_name": "clips-api",
                }
            )

        logger.info(f"Database engine created for {engine.dialect.name}")
        return engine

    except Exception as e:
        logger.error(f"Failed to create database engine: {e}")
        raise

def init_db(bind=None):
    """Create all tables on the given engine"""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    Base.metadata.create_all(bind=bind or engine)

engine = create_database_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
