import logging
import sys
from pathlib import Path

from loguru import logger

from src.hotel_auth.runtime.config.config_data import LoggingConfig
from src.hotel_auth.runtime.context import get_config

PLAIN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "[<cyan>{extra[request_id]}</cyan>] | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# stdlib logger name -> minimum level forwarded
NOISY_LOGGERS: dict[str, int] = {
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.CRITICAL,
}


class InterceptHandler(logging.Handler):
    """Forward stdlib ``logging`` records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # Request logging and error tracebacks come from the HTTP middleware
        if record.name == "uvicorn.access":
            return
        if record.name == "uvicorn.error" and record.levelno >= logging.ERROR:
            return

        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=2, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def _add_file_sink(cfg: LoggingConfig, backtrace: bool, diagnose: bool) -> None:
    path = Path(cfg.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    as_json = cfg.format == "json"
    logger.add(
        str(path),
        level=cfg.level,
        format="{message}" if as_json else PLAIN_FORMAT,
        serialize=as_json,
        rotation=f"{cfg.max_size_mb} MB",
        retention=cfg.backup_count,
        compression="zip",
        enqueue=True,
        backtrace=backtrace,
        diagnose=diagnose,
    )


def _route_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in list(logging.root.manager.loggerDict):
        stdlog = logging.getLogger(name)
        stdlog.handlers = []
        stdlog.propagate = True
    for name, level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def configure_logging() -> None:
    """Install the console sink, the optional rotating file sink and the stdlib bridge."""
    main_config = get_config()
    cfg = main_config.logging
    env = main_config.app.environment

    logger.remove()
    logger.configure(
        extra={"request_id": "-"},
        patcher=lambda record: record["extra"].setdefault("request_id", "-"),
    )

    # Local variable rendering is development-only
    diagnose = env == "development"
    backtrace = env != "production"

    logger.add(
        sys.stderr,
        level=cfg.level,
        format=PLAIN_FORMAT,
        colorize=True,
        backtrace=backtrace,
        diagnose=diagnose,
    )
    if cfg.file:
        _add_file_sink(cfg, backtrace, diagnose)

    _route_stdlib_logging()

    logger.bind(
        app_level=cfg.level,
        app_format=cfg.format,
        app_file=cfg.file or None,
        environment=env,
    ).info("Logging configured")
