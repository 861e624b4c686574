"""
Services de aplicação.
"""

from .lead_lifecycle_service import (
    LeadLifecycleService,
    PreparedWrite,
    MAX_WRITE_ATTEMPTS,
    PROTECTED_FIELDS,
    get_lead_lifecycle_service,
)

__all__ = [
    "LeadLifecycleService",
    "PreparedWrite",
    "MAX_WRITE_ATTEMPTS",
    "PROTECTED_FIELDS",
    "get_lead_lifecycle_service",
]
