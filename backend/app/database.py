"""Database engine, session factory, and declarative base.

  - Base          → every billing table (users, clients, items, invoices, …)
  - engine        → shared by the session factory and the readiness probe
  - async_session → session factory used by the recurring invoice store
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=10,
    max_overflow=5,
)

# Rows returned by the store stay readable after their session closes
async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass
