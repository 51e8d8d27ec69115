"""Database initialization script."""

from loguru import logger

from src.hotel_auth.core.services.database.db_session import DbSessionService
from src.hotel_auth.runtime.context import get_config


def init_db(db_service: DbSessionService | None = None) -> None:
    """Create all database tables."""
    owned = db_service is None
    db_service = db_service or DbSessionService()
    try:
        db_service.create_all()
    finally:
        if owned:
            db_service.dispose()
    logger.bind(environment=get_config().app.environment).info("Database tables created")


if __name__ == "__main__":
    init_db()
