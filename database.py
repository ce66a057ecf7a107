import logging

from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from config import DATABASE_URL, DB_MAX_OVERFLOW, DB_POOL_SIZE, SQL_ECHO

logger = logging.getLogger(__name__)


def build_engine(url: str):
    """Create the async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=SQL_ECHO, future=True)
    return create_async_engine(
        url,
        echo=SQL_ECHO,
        future=True,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
    )


# Create the Async Engine
engine = build_engine(DATABASE_URL)

async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(bind=None):
    async with (bind or engine).begin() as conn:
        # This creates the tables if they don't exist
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables ready")


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session
