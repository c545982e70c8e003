from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from nurselink.config import get_settings

settings = get_settings()

# Convert sqlite:/// to sqlite+aiosqlite:///
database_url = settings.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

engine = create_async_engine(database_url, echo=False)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db():
    # Register all tables on the metadata before create_all
    import nurselink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

def create_worker_session_factory():
    """
    Engine and session factory for one Celery task run.

    Each task drives its own event loop, so the engine must not pool
    connections across runs. Caller disposes the engine.
    """
    worker_engine = create_async_engine(database_url, echo=False, poolclass=NullPool)
    return worker_engine, async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False)
