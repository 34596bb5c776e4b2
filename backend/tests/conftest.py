import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cryptoiq.db.models import Base


@pytest.fixture
def run_with_session():
    """Run ``scenario(session)`` against a fresh in-memory database."""

    def runner(scenario):
        async def _run():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                async with session_factory() as session:
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(_run())

    return runner
