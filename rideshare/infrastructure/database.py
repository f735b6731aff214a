"""
Async SQLAlchemy engine and session factory.

``asyncpg`` is the PostgreSQL driver.  Services open their own sessions from
``async_session_factory`` so every mutating call is exactly one transaction;
route handlers that only read (stats) use the ``get_db`` dependency.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from rideshare.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the users / rides / matches tables."""
