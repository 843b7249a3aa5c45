from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import select, func
from careerhub.config import get_settings
from careerhub.utils.logger import logger

settings = get_settings()


def _engine_options(url: str) -> dict:
    options = {
        "echo": settings.debug,
        "future": True,
        "pool_pre_ping": True,  # Detect and recycle stale/broken connections
    }
    if not url.startswith("sqlite"):
        # Fixed-size pool shared by the API and the scheduled tasks
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = 0
        options["pool_recycle"] = 300
    return options


# Create async engine
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Create session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()

# Dependency for FastAPI routes
async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


def get_session_factory():
    """Session factory for work that outlives the request (SSE persistence)."""
    return AsyncSessionLocal


def _import_models():
    # Import models to register them with Base
    from careerhub.models import user, company, student, job, meeting, registration  # noqa: F401
    from careerhub.models import notification, ai_chat  # noqa: F401


# Initialize database (create tables)
async def init_db(bind=None, session_factory=None):
    """Create all database tables and seed the default notification templates"""
    _import_models()

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("db.tables_created")
    await seed_notification_templates(session_factory or AsyncSessionLocal)


async def seed_notification_templates(session_factory) -> int:
    """Insert the built-in templates when the templates table is empty."""
    from careerhub.models.notification import NotificationTemplate
    from careerhub.services.notification_service import DEFAULT_TEMPLATES

    async with session_factory() as db:
        existing = await db.scalar(select(func.count()).select_from(NotificationTemplate))
        if existing:
            return 0

        for (notification_type, role), (title, message, priority) in DEFAULT_TEMPLATES.items():
            db.add(NotificationTemplate(
                notification_type=notification_type,
                target_user_role=role,
                title_template=title,
                message_template=message,
                default_priority=priority,
            ))
        await db.commit()

    logger.info("db.templates_seeded", extra={"count": len(DEFAULT_TEMPLATES)})
    return len(DEFAULT_TEMPLATES)
