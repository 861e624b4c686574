"""Entidades do domínio."""
from .base import Base, TimestampMixin, utc_now
from .enums import (
    LeadStatus,
    TERMINAL_STATUSES,
    LeadSource,
    Platform,
    Team,
    LeadPriority,
    LeadQuality,
    LostReason,
    Currency,
    NoteType,
    FollowUpType,
    UserRole,
)
from .user import User
from .lead import Lead
from .lead_note import LeadNote
from .lead_follow_up import LeadFollowUp
from .audit_log import AuditLog

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utc_now",
    # Enums
    "LeadStatus",
    "TERMINAL_STATUSES",
    "LeadSource",
    "Platform",
    "Team",
    "LeadPriority",
    "LeadQuality",
    "LostReason",
    "Currency",
    "NoteType",
    "FollowUpType",
    "UserRole",
    # Models
    "User",
    "Lead",
    "LeadNote",
    "LeadFollowUp",
    # Audit
    "AuditLog",
]
