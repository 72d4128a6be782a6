"""Database engine, session factory, and declarative base.

All authorization tables live in one schema and share a single
DeclarativeBase. Referential integrity between them is enforced by the
service layer, not by foreign keys, so catalog reseeding can wipe and
reinsert rows without cascading into user assignments.

Session dependency for FastAPI:
  - get_db()  → one session per request, committed on success
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from careaccess.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Authorization tables (permissions, roles, assignments, grants)."""
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session; commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
