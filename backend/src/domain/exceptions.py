"""
EXCEÇÕES DO NÚCLEO
==================

Erros tipados devolvidos ao chamador. Cada um tem um `kind` estável
(para o cliente decidir o que fazer) e uma mensagem legível.
Nunca carregam stack trace nem material de chave.
"""

from typing import Any, Dict, Optional


class LeadEngineError(Exception):
    """Base de todos os erros do núcleo."""

    kind = "internal_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LeadEngineError):
    """Campos obrigatórios ausentes ou inválidos (ex: won sem deal_value)."""
    kind = "validation_error"


class AssignmentUnavailable(LeadEngineError):
    """Nenhum responsável elegível para o lead."""
    kind = "assignment_unavailable"


class NotFoundError(LeadEngineError):
    """Lead, follow-up ou registro inexistente."""
    kind = "not_found"


class PermissionDenied(LeadEngineError):
    """Ator sem direito sobre a equipe/lead alvo."""
    kind = "permission_denied"


class CryptoFailure(LeadEngineError):
    """Falha ao criptografar/descriptografar (sem vazar texto claro)."""
    kind = "crypto_failure"


class AuditWriteFailure(LeadEngineError):
    """Registro de auditoria não gravado. Nunca aborta a operação de negócio."""
    kind = "audit_write_failure"


class ConcurrentModificationError(LeadEngineError):
    """O registro mudou entre a leitura e a escrita condicional."""
    kind = "concurrent_modification"


class ImmutableRecordError(LeadEngineError):
    """Tentativa de alterar campo imutável de um registro de auditoria."""
    kind = "immutable_record"
