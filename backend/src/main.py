"""
LEAD ENGINE - Ponto de Entrada
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from src.config import Settings, get_settings
from src.infrastructure.database import dispose_engine, init_db
from src.infrastructure.logging_config import setup_logging
from src.infrastructure.scheduler import create_scheduler, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


# ============================================================
# LIFESPAN
# ============================================================
@asynccontextmanager
async def lifespan(
    settings: Optional[Settings] = None,
    run_scheduler: bool = True,
) -> AsyncIterator[Settings]:
    """
    Sobe o núcleo: logging, tabelas (só em desenvolvimento) e jobs
    periódicos. Na saída para os jobs e fecha o pool do banco.

    Usage:
        async with lifespan() as settings:
            service = get_lead_lifecycle_service()
            ...
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_output=settings.log_json)
    logger.info("Iniciando Lead Engine", extra={"environment": settings.environment})

    if settings.is_development:
        await init_db()
        logger.info("Tabelas criadas")

    if run_scheduler:
        create_scheduler(settings)
        start_scheduler()

    try:
        yield settings
    finally:
        if run_scheduler:
            stop_scheduler()
        await dispose_engine()
        logger.info("Encerrando Lead Engine")
