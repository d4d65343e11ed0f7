from fastapi import Request
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker

from logging_config import get_logger
from models import Base

logger = get_logger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url)


def build_session_factory(engine: AsyncEngine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db(request: Request):
    async with request.app.state.session_factory() as session:
        yield session


async def create_db_and_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created or already exist.")
