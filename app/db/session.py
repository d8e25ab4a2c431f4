import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.config import get_settings
from app.db.base import Base

settings = get_settings()
logger = logging.getLogger(__name__)

engine_kwargs = {"pool_pre_ping": True, "echo": False}  # Detect stale connections before using them
if not settings.DATABASE_URL.startswith("sqlite"):
    engine_kwargs.update(
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create database tables if they don't exist."""
    # Import all models to ensure they're registered with SQLAlchemy
    from app.models import user, employee_card, employee_id_sequence  # noqa

    logger.info("Running create_all() for database initialization.")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
