"""
Testes da infraestrutura de execução: logging JSON, conexão, jobs
periódicos e lifespan.
"""

import json
import logging
import sys

import pytest

from src.config import get_settings
from src.infrastructure.database import normalize_database_url
from src.infrastructure.jobs.audit_retention_job import (
    run_audit_retention_job,
    run_suspicious_activity_scan,
)
from src.infrastructure.logging_config import JSONFormatter, setup_logging
from src.infrastructure.scheduler import (
    AUDIT_RETENTION_JOB_ID,
    SUSPICIOUS_SCAN_JOB_ID,
    create_scheduler,
    get_scheduler_status,
    run_job_now,
    stop_scheduler,
)
from src.infrastructure.services.audit_service import AuditCategory
from src.main import lifespan
from tests.utils import audit_fact


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


# ===== TESTE 1: LOGGING =====

def test_json_formatter_includes_extra_fields():
    record = logging.LogRecord("src.test", logging.INFO, __file__, 10, "Lead capturado", None, None)
    record.lead_id = 42
    record.team = "denis"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "Lead capturado"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "src.test"
    assert payload["lead_id"] == 42
    assert payload["team"] == "denis"


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord(
            "src.test", logging.ERROR, __file__, 10, "Falhou", None, sys.exc_info()
        )

    payload = json.loads(JSONFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]


def test_setup_logging_configures_root(restore_root_logger):
    setup_logging("warning")

    assert restore_root_logger.level == logging.WARNING
    assert len(restore_root_logger.handlers) == 1
    assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
    assert logging.getLogger("audit.dead_letter").level == logging.ERROR


def test_setup_logging_plain_text(restore_root_logger):
    setup_logging("INFO", json_output=False)
    assert not isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)


# ===== TESTE 2: CONEXÃO =====

@pytest.mark.parametrize("url,expected", [
    ("postgresql://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
    ("postgres://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
    ("postgresql+asyncpg://u:p@host/db", "postgresql+asyncpg://u:p@host/db"),
    ("sqlite+aiosqlite:///./lead_engine.db", "sqlite+aiosqlite:///./lead_engine.db"),
])
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected


# ===== TESTE 3: JOB DE RETENÇÃO =====

@pytest.mark.asyncio
async def test_retention_job_purges_then_archives(audit_trail):
    await audit_trail.record(audit_fact(days_ago=900))
    await audit_trail.record(audit_fact(days_ago=400))
    await audit_trail.record(audit_fact(days_ago=5))

    summary = await run_audit_retention_job(audit_trail)

    assert summary["purged"] == 1
    assert summary["archived"] == 1
    assert summary["suspicious_groups"] == 0
    assert summary["lock_recommendations"] == []


@pytest.mark.asyncio
async def test_suspicious_scan_recommends_lock(audit_trail, caplog):
    for minutes in (25, 20, 15, 10, 5):
        await audit_trail.record(audit_fact(
            action="user_login_failed",
            category=AuditCategory.AUTHENTICATION,
            user_id=9,
            success=False,
            minutes_ago=minutes,
            ip_address="198.51.100.9",
        ))

    with caplog.at_level(logging.WARNING):
        summary = await run_suspicious_activity_scan(audit_trail)

    assert summary == {"suspicious_groups": 1, "lock_recommendations": [9]}
    assert any(r.getMessage() == "Bloqueio recomendado" for r in caplog.records)


@pytest.mark.asyncio
async def test_suspicious_scan_ignores_anonymous_attempts(audit_trail, caplog):
    for minutes in (25, 20, 15, 10, 5):
        await audit_trail.record(audit_fact(
            action="login_attempt",
            category=AuditCategory.AUTHENTICATION,
            user_id=None,
            success=False,
            minutes_ago=minutes,
            ip_address="198.51.100.10",
        ))

    with caplog.at_level(logging.WARNING):
        summary = await run_suspicious_activity_scan(audit_trail)

    assert summary == {"suspicious_groups": 1, "lock_recommendations": []}
    assert not any(r.getMessage() == "Bloqueio recomendado" for r in caplog.records)


# ===== TESTE 4: SCHEDULER =====

def test_scheduler_registers_jobs(settings):
    stop_scheduler()
    try:
        create_scheduler(settings)
        status = get_scheduler_status()

        assert status["running"] is False
        assert {job["id"] for job in status["jobs"]} == {AUDIT_RETENTION_JOB_ID, SUSPICIOUS_SCAN_JOB_ID}
    finally:
        stop_scheduler()

    assert get_scheduler_status()["running"] is False
    assert get_scheduler_status()["jobs"] == []


@pytest.mark.asyncio
async def test_run_unknown_job():
    result = await run_job_now("backup_job")
    assert result["success"] is False


# ===== TESTE 5: LIFESPAN =====

@pytest.mark.asyncio
async def test_lifespan_creates_tables_and_cleans_up(tmp_path, monkeypatch, restore_root_logger):
    database = tmp_path / "lifespan.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{database}")
    monkeypatch.setenv("ENVIRONMENT", "development")
    get_settings.cache_clear()
    try:
        async with lifespan(run_scheduler=False) as settings:
            assert settings.is_development
            assert database.exists()
    finally:
        get_settings.cache_clear()
