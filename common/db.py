from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import Settings, get_settings


logger = logging.getLogger(__name__)


def build_device_db_url(address: str, settings: Settings | None = None) -> str:
    settings = settings or get_settings()
    return settings.device_db_url_template.format(address=address)


def create_device_engine(address: str, settings: Settings | None = None) -> Engine:
    """Crea el engine SQLAlchemy para la base de series temporales de un gateway.

    No abre conexión todavía: el test de conectividad lo hace quien
    consulta, dentro de su propio timeout.
    """
    settings = settings or get_settings()
    url = build_device_db_url(address, settings)

    logger.info("[DB] Create engine for gateway address=%s", address)

    return create_engine(
        url,
        pool_size=2,
        max_overflow=2,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_timeout=settings.collaborator_timeout_seconds,
        future=True,
    )
