"""Database engine and session factory used across the application."""

from collections.abc import Iterator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, text
from sqlmodel import Session, SQLModel, create_engine

from src.hotel_auth.runtime.config.config_data import ConfigData
from src.hotel_auth.runtime.context import get_config


class DbSessionService:
    def __init__(self, engine: Engine | None = None):
        """Initialize the shared database engine and session factory.

        Args:
            engine: Pre-built engine (tests pass an in-memory SQLite engine).
                When omitted the engine is built from ``config.database``.
        """
        if engine is not None:
            self._engine = engine
            return

        logger.info("Setting up database engine and session factory")
        main_config = get_config()
        db_config = main_config.database

        engine_kwargs: dict = {
            "pool_pre_ping": True,  # Validate connections before use
            "echo": False,
            "connect_args": self._get_connect_args(main_config),
        }
        if not db_config.is_sqlite:
            engine_kwargs.update(
                {
                    "pool_size": db_config.pool_size,
                    "max_overflow": db_config.max_overflow,
                    "pool_timeout": db_config.pool_timeout,
                    "pool_recycle": db_config.pool_recycle,
                }
            )

        self._engine = create_engine(db_config.connection_string, **engine_kwargs)

        if main_config.app.environment == "production":
            logger.bind(
                pool_size=db_config.pool_size,
                max_overflow=db_config.max_overflow,
                pool_timeout=db_config.pool_timeout,
                pool_recycle=db_config.pool_recycle,
            ).info("Database engine initialized")

    @property
    def engine(self) -> Engine:
        return self._engine

    def _get_connect_args(self, config: ConfigData) -> dict:
        """Get database-specific connection arguments."""
        connect_args: dict = {}

        if "postgresql" in config.database.url:
            connect_args.update(
                {
                    "application_name": f"{config.app.environment}_hotel_auth",
                    "connect_timeout": 30,
                }
            )

        elif config.database.is_sqlite:
            connect_args.update(
                {
                    "check_same_thread": False,  # Sessions cross threadpool workers
                    "timeout": 20,  # Lock timeout
                }
            )

            if config.app.environment == "production":
                logger.warning(
                    "SQLite is not recommended for production use. "
                    "Consider PostgreSQL for better performance and reliability."
                )

        return connect_args

    def create_all(self) -> None:
        """Create all registered tables that do not exist yet."""
        # Register table models with the metadata
        from src.hotel_auth.entities.core.user import UserTable  # noqa: F401

        SQLModel.metadata.create_all(self._engine)

    def get_session(self) -> Session:
        """Return a new SQLModel session bound to the shared engine."""
        return Session(
            self._engine,
            expire_on_commit=False,  # Prevent lazy loading issues
            autoflush=True,
        )

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """One committed transaction per block, rolled back on error."""
        db = self.get_session()
        try:
            yield db
            db.commit()
        except Exception as e:
            db.rollback()
            logger.bind(error_type=type(e).__name__, error_message=str(e)).error(
                "Database transaction failed"
            )
            raise
        finally:
            db.close()

    def health_check(self) -> bool:
        """Perform a health check on the database connection."""
        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.bind(error=str(e)).error("Database health check failed")
            return False

    def dispose(self) -> None:
        self._engine.dispose()
