"""
JOB DE RETENÇÃO DA AUDITORIA
=============================

Manutenção periódica da trilha de auditoria:
1. Remove registros não arquivados além da expiração longa
2. Arquiva registros além do período de retenção
3. Procura atividade suspeita e recomenda bloqueios

RODA: uma vez por dia (ver scheduler). A varredura de atividade
suspeita também roda sozinha, na janela configurada.
"""

import logging
from datetime import datetime
from typing import Optional

from src.infrastructure.services.audit_service import AuditTrail, get_audit_trail

logger = logging.getLogger(__name__)


async def run_audit_retention_job(
    trail: Optional[AuditTrail] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Arquiva e expira registros. Retorna o resumo da execução.
    """
    trail = trail or get_audit_trail()

    # Expira primeiro: o que passou do horizonte sem ser arquivado sai
    purged = await trail.purge_expired(now=now)
    archived = await trail.archive(now=now)

    summary = {"purged": purged, "archived": archived}
    summary.update(await run_suspicious_activity_scan(trail, now=now))

    logger.info("Retenção da auditoria concluída", extra=summary)
    return summary


async def run_suspicious_activity_scan(
    trail: Optional[AuditTrail] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Varre a janela recente. Só sinaliza: o bloqueio é aplicado por
    quem gerencia usuários.
    """
    trail = trail or get_audit_trail()

    suspicious = await trail.find_suspicious_activity(now=now)
    lock = await trail.lock_recommendations(now=now)

    for entry in lock:
        logger.warning(
            "Bloqueio recomendado",
            extra={
                "user_id": entry.user_id,
                "ip_address": entry.ip_address,
                "failed_attempts": entry.failed_attempts,
                "last_attempt": entry.last_attempt.isoformat(),
            },
        )

    return {
        "suspicious_groups": len(suspicious),
        "lock_recommendations": [entry.user_id for entry in lock],
    }
