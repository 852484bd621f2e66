"""
logging_config.py — Loguru setup for Pipeline Hub

Loguru is the only logging backend; stdlib records (uvicorn, SQLAlchemy,
httpx) are intercepted and re-emitted through it.

Business Rules:
- JSON lines on stdout in production, colourised text in development
- Webhook deliveries (ingestion service + webhook router) also go to their
  own rotating JSON file in production, so rejected payloads can be found
  and replayed with `scripts/manage_opportunities.py ingest`
- Level and mode come from Settings unless passed explicitly

Called by: pipelinehub/main.py (lifespan)
"""

import logging
import sys

from loguru import logger

from .config import settings

DELIVERY_LOG = "/var/log/pipelinehub/deliveries.log"
DELIVERY_MODULES = ("pipelinehub.services.ingestion", "pipelinehub.routers.webhook")

DEV_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | {extra} {message}"
)


def _is_production() -> bool:
    return settings.is_production


def is_delivery_record(record) -> bool:
    return record["name"].startswith(DELIVERY_MODULES)


def setup_logging(level: str | None = None, production: bool | None = None) -> None:
    logger.remove()
    level = (level or settings.log_level).upper()
    production = _is_production() if production is None else production

    if production:
        logger.add(sys.stdout, level=level, format="{message}", serialize=True)
        logger.add(
            DELIVERY_LOG,
            level="INFO",
            filter=is_delivery_record,
            rotation="20 MB",
            retention="14 days",
            compression="gz",
            serialize=True,
        )
    else:
        logger.add(sys.stdout, level=level, format=DEV_FORMAT, colorize=True)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for noisy in ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=level, production=production)


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())
