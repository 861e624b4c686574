"""
Scheduler de Jobs (APScheduler)
"""

from .scheduler import (
    AUDIT_RETENTION_JOB_ID,
    SUSPICIOUS_SCAN_JOB_ID,
    create_scheduler,
    start_scheduler,
    stop_scheduler,
    get_scheduler_status,
    run_job_now,
)

__all__ = [
    "AUDIT_RETENTION_JOB_ID",
    "SUSPICIOUS_SCAN_JOB_ID",
    "create_scheduler",
    "start_scheduler",
    "stop_scheduler",
    "get_scheduler_status",
    "run_job_now",
]
