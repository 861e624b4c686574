"""
INFRASTRUCTURE SERVICES
========================

Organização:
- Segurança: criptografia de campos PII
- Negócio: distribuição de leads entre equipes
- Compliance: trilha de auditoria
"""

# =============================================================================
# SEGURANÇA - Criptografia
# =============================================================================

from .encryption_service import (
    FieldCipher,
    PII_FIELDS,
    derive_key,
    get_field_cipher,
    is_envelope,
    mask_value,
    reset_field_cipher,
)

# =============================================================================
# NEGÓCIO - Distribuição
# =============================================================================

from .distribution_service import (
    Assignment,
    CHANNEL_ROUTING,
    assign,
    get_assignable_user,
    member_workloads,
    route_channel,
    team_workloads,
)

# =============================================================================
# COMPLIANCE - Auditoria
# =============================================================================

from .audit_service import (
    AuditAction,
    AuditCategory,
    AuditFact,
    AuditPage,
    AuditQuery,
    AuditSeverity,
    AuditTrail,
    AuditWriteResult,
    ResourceType,
    SuspiciousActivity,
    get_audit_trail,
    infer_severity,
)

__all__ = [
    # Criptografia
    "FieldCipher",
    "PII_FIELDS",
    "derive_key",
    "get_field_cipher",
    "is_envelope",
    "mask_value",
    "reset_field_cipher",
    # Distribuição
    "Assignment",
    "CHANNEL_ROUTING",
    "assign",
    "get_assignable_user",
    "member_workloads",
    "route_channel",
    "team_workloads",
    # Auditoria
    "AuditAction",
    "AuditCategory",
    "AuditFact",
    "AuditPage",
    "AuditQuery",
    "AuditSeverity",
    "AuditTrail",
    "AuditWriteResult",
    "ResourceType",
    "SuspiciousActivity",
    "get_audit_trail",
    "infer_severity",
]
