"""
ENTIDADE: AUDIT LOG
====================

Registro de auditoria para compliance e segurança.

Depois de gravado, só `is_archived`, `archived_at` e `tags`
podem mudar. Qualquer outra alteração via ORM é recusada.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Text, DateTime, JSON, Boolean, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from src.domain.entities.base import Base, utc_now
from src.domain.exceptions import ImmutableRecordError


MUTABLE_AFTER_WRITE = frozenset({"is_archived", "archived_at", "tags"})


class AuditLog(Base):
    """Modelo de log de auditoria."""
    
    __tablename__ = "audit_logs"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    
    # Quem fez (user_id nulo só em tentativa de login anônima)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    user_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    
    # Ação realizada
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    resource_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    
    # Resultado
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, index=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    
    # Origem
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True, index=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    request_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    request_method: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    
    # Classificação
    category: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="low", index=True)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    
    # Valores antigo/novo (para alterações)
    previous_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    new_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    changed_fields: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    
    # RGPD
    gdpr_relevant: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    data_subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    
    # Retenção
    retention_period_days: Mapped[int] = mapped_column(Integer, default=365, nullable=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    
    # Timestamps
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, 
        default=utc_now, 
        nullable=False,
        index=True
    )
    
    def __repr__(self) -> str:
        return f"<AuditLog {self.id}: {self.action} at {self.timestamp}>"
    
    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "user_name": self.user_name,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "resource_name": self.resource_name,
            "description": self.description,
            "success": self.success,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "ip_address": self.ip_address,
            "category": self.category,
            "severity": self.severity,
            "tags": list(self.tags or []),
            "changed_fields": self.changed_fields,
            "gdpr_relevant": self.gdpr_relevant,
            "data_subject": self.data_subject,
            "is_archived": self.is_archived,
            "archived_at": self.archived_at.isoformat() if self.archived_at else None,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@event.listens_for(AuditLog, "before_update")
def _reject_immutable_changes(mapper, connection, target: AuditLog) -> None:
    state = inspect(target)
    for attr in state.attrs:
        if attr.key in MUTABLE_AFTER_WRITE:
            continue
        if attr.history.has_changes():
            raise ImmutableRecordError(
                f"Campo '{attr.key}' do registro de auditoria é imutável",
                details={"audit_id": target.id, "field": attr.key},
            )
