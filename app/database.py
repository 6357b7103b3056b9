from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from app.config import get_settings
from app.utils.logger import logger

settings = get_settings()

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,  # Detect and recycle stale/broken connections
)

# Create session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()

# Initialize database (create tables)
async def init_db(bind=None):
    """Create the AI cache tables if they don't exist yet."""
    # Import models to register them with Base
    from app.models import ai_cache  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"AI cache tables ensured ({', '.join(sorted(Base.metadata.tables))})")
