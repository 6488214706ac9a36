"""
Async database engine and session management.

Purpose:
- Create SQLAlchemy async engine (aiosqlite by default, any async driver via DATABASE_URL)
- Provide async session factory for the SQL subscription repository
- Provide Base declarative class for ORM models

Production notes:
- Use connection pooling with appropriate pool_size and max_overflow
- Use a server database (MySQL/Postgres) when running more than one process
"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
	engine = create_async_engine(url, echo=echo, future=True)
	logger.info("Async DB engine created: %s", engine.url.render_as_string(hide_password=True))
	return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
	return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine) -> None:
	"""Create tables for all registered models (development convenience)."""
	from models import db_models  # noqa: F401 ensure models are imported so tables are registered

	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)
