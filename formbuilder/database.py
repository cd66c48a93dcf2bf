# formbuilder/database.py
import os
import logging
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from .core import config

logger = logging.getLogger(__name__)

DATABASE_URL = config.DATABASE_URL

if DATABASE_URL is None:
    logger.warning(
        "DATABASE_URL nicht in Umgebungsvariablen gefunden! Fallback auf lokale SQLite-DB."
    )
    sqlite_db_path = os.path.join(os.path.dirname(__file__), "formbuilder_fallback.db")
    DATABASE_URL = f"sqlite+aiosqlite:///{sqlite_db_path}"
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Erstellt die Async-Engine.

    SQLite läuft ohne Pool und mit aktivierten Foreign Keys. Server-Datenbanken
    bekommen einen begrenzten Pool: wer keine Verbindung bekommt, wartet bis
    DB_POOL_TIMEOUT und scheitert dann mit einem TimeoutError.
    """
    if url.startswith("sqlite"):
        new_engine = create_async_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=NullPool,
        )

        @event.listens_for(new_engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_recycle=config.DB_POOL_RECYCLE,
        pool_pre_ping=True,
    )


engine = build_engine(DATABASE_URL, echo=config.DB_ECHO)

AsyncSessionFactory = async_sessionmaker(
    bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    # Transaktionen werden in der crud-Schicht explizit mit session.begin() geführt
    async with AsyncSessionFactory() as session:
        yield session


async def create_db_and_tables():
    """
    Tabellen werden durch Alembic verwaltet. Nur für lokale SQLite-Fallbacks
    wird das Schema direkt aus den Modellen erzeugt.
    """
    if DATABASE_URL.startswith("sqlite"):
        from . import models  # noqa: F401  registriert alle Tabellen

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQLite-Schema aus den Modellen erstellt.")
