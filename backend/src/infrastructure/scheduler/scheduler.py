"""
SCHEDULER DE JOBS PERIÓDICOS
=============================

Gerencia a execução de tarefas agendadas.

JOBS CONFIGURADOS:
- Retenção da auditoria: todo dia às 03:00 (UTC)
- Varredura de atividade suspeita: a cada janela configurada

TECNOLOGIA: APScheduler (AsyncIOScheduler)
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)

AUDIT_RETENTION_JOB_ID = "audit_retention_job"
SUSPICIOUS_SCAN_JOB_ID = "suspicious_activity_scan"

# Instância global do scheduler
scheduler: Optional[AsyncIOScheduler] = None


def create_scheduler(settings: Optional[Settings] = None) -> AsyncIOScheduler:
    """
    Cria e configura o scheduler.

    CHAMADO POR: src.main.lifespan no startup
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler já existe, retornando instância existente")
        return scheduler

    settings = settings or get_settings()

    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Agrupa execuções perdidas
            "max_instances": 1,  # Só uma instância por vez
            "misfire_grace_time": 60 * 5,  # 5 minutos de tolerância
        },
    )

    _register_audit_retention_job(scheduler)
    _register_suspicious_scan_job(scheduler, settings)

    logger.info("Scheduler criado", extra={"jobs": len(scheduler.get_jobs())})
    return scheduler


def _register_audit_retention_job(sched: AsyncIOScheduler) -> None:
    """
    EXECUTA: todo dia às 03:00
    """
    from src.infrastructure.jobs.audit_retention_job import run_audit_retention_job

    sched.add_job(
        run_audit_retention_job,
        trigger=CronTrigger(hour=3, minute=0),
        id=AUDIT_RETENTION_JOB_ID,
        name="Retenção da Auditoria",
        replace_existing=True,
    )


def _register_suspicious_scan_job(sched: AsyncIOScheduler, settings: Settings) -> None:
    from src.infrastructure.jobs.audit_retention_job import run_suspicious_activity_scan

    sched.add_job(
        run_suspicious_activity_scan,
        trigger=IntervalTrigger(minutes=settings.suspicious_window_minutes),
        id=SUSPICIOUS_SCAN_JOB_ID,
        name="Varredura de Atividade Suspeita",
        replace_existing=True,
    )


def start_scheduler() -> None:
    """
    Inicia o scheduler.

    CHAMADO POR: src.main.lifespan (depois de create_scheduler)
    """
    if scheduler is None:
        logger.error("Scheduler não foi criado. Chame create_scheduler() primeiro.")
        return

    if scheduler.running:
        logger.warning("Scheduler já está rodando")
        return

    scheduler.start()
    for job in scheduler.get_jobs():
        logger.info("Job ativo", extra={"job_id": job.id, "next_run": str(job.next_run_time)})


def stop_scheduler() -> None:
    """
    Para o scheduler e descarta a instância.
    """
    global scheduler

    if scheduler is None:
        return

    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler parado")
    scheduler = None


def get_scheduler_status() -> dict:
    """
    Retorna status do scheduler.
    """
    if scheduler is None:
        return {
            "running": False,
            "jobs": [],
            "error": "Scheduler não inicializado",
        }

    jobs_info = []
    for job in scheduler.get_jobs():
        # Jobs pendentes (scheduler parado) ainda não têm next_run_time
        next_run = getattr(job, "next_run_time", None)
        jobs_info.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(next_run) if next_run else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs_info,
    }


async def run_job_now(job_id: str) -> dict:
    """
    Executa um job imediatamente (fora do agendamento).

    Útil para testes ou execução manual pelo admin.
    """
    from src.infrastructure.jobs.audit_retention_job import (
        run_audit_retention_job,
        run_suspicious_activity_scan,
    )

    jobs = {
        AUDIT_RETENTION_JOB_ID: run_audit_retention_job,
        SUSPICIOUS_SCAN_JOB_ID: run_suspicious_activity_scan,
    }

    job = jobs.get(job_id)
    if job is None:
        return {"success": False, "error": f"Job '{job_id}' não encontrado"}

    result = await job()
    return {"success": True, "result": result}
