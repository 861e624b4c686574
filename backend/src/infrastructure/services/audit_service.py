"""
AUDIT LOG SERVICE - Serviço de Auditoria
==========================================

Registra as ações do sistema para:
- Compliance (RGPD)
- Segurança
- Responsabilização (quem mudou o quê, quando)

Regras:
- Gravação SEMPRE depois do commit da operação de negócio, em sessão própria
- Falha de auditoria nunca derruba a operação: retry limitado e, se persistir,
  o fato vai para o logger `audit.dead_letter` (nível ERROR, alertável)
- Registro gravado é imutável; só arquivamento e tags mudam depois
- Arquivar nunca apaga; a única limpeza destrutiva é a expiração longa
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import delete, func, or_, select, update, case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import Settings, get_settings
from src.domain.entities import AuditLog, utc_now
from src.domain.exceptions import AuditWriteFailure, NotFoundError

logger = logging.getLogger(__name__)
dead_letter_logger = logging.getLogger("audit.dead_letter")

DESCRIPTION_MAX_LENGTH = 500
RETRY_BACKOFF_SECONDS = 0.05


class AuditAction(str, Enum):
    """Tipos de ações auditáveis."""

    # Auth
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    USER_LOGIN_FAILED = "user_login_failed"
    LOGIN_SUCCESS = "login_success"
    LOGIN_ATTEMPT = "login_attempt"
    LOGOUT = "logout"
    TOKEN_REFRESH = "token_refresh"
    REGISTER_ATTEMPT = "register_attempt"

    # Usuários
    CREATE_USER = "create_user"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_PASSWORD_CHANGED = "user_password_changed"
    USER_ROLE_CHANGED = "user_role_changed"

    # Leads
    LEAD_CREATED = "lead_created"
    LEAD_UPDATED = "lead_updated"
    LEAD_DELETED = "lead_deleted"
    LEAD_STATUS_CHANGED = "lead_status_changed"
    LEAD_ASSIGNED = "lead_assigned"
    LEAD_REASSIGNED = "lead_reassigned"
    LEAD_ARCHIVED = "lead_archived"
    LEAD_VIEWED = "lead_viewed"
    LEAD_NOTE_ADDED = "lead_note_added"
    LEAD_FOLLOWUP_SCHEDULED = "lead_followup_scheduled"
    LEAD_FOLLOWUP_COMPLETED = "lead_followup_completed"
    LEAD_EXPORTED = "lead_exported"
    LEAD_IMPORTED = "lead_imported"

    # Campanhas
    CAMPAIGN_CREATED = "campaign_created"
    CAMPAIGN_UPDATED = "campaign_updated"
    CAMPAIGN_DELETED = "campaign_deleted"
    CAMPAIGN_STARTED = "campaign_started"
    CAMPAIGN_PAUSED = "campaign_paused"
    CAMPAIGN_COMPLETED = "campaign_completed"
    CAMPAIGN_OPTIMIZED = "campaign_optimized"
    CAMPAIGN_KPIS_UPDATED = "campaign_kpis_updated"

    # Sistema
    DATA_EXPORTED = "data_exported"
    DATA_IMPORTED = "data_imported"
    SETTINGS_CHANGED = "settings_changed"
    INTEGRATION_CONNECTED = "integration_connected"
    INTEGRATION_DISCONNECTED = "integration_disconnected"
    BACKUP_CREATED = "backup_created"
    BACKUP_RESTORED = "backup_restored"

    # Segurança
    SECURITY_INCIDENT = "security_incident"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    ACCESS_DENIED = "access_denied"
    PERMISSION_CHANGED = "permission_changed"


class AuditCategory(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_ACCESS = "data_access"
    DATA_MODIFICATION = "data_modification"
    SYSTEM = "system"
    SECURITY = "security"


class AuditSeverity(str, Enum):
    """Severidade do evento."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ResourceType(str, Enum):
    USER = "user"
    LEAD = "lead"
    CAMPAIGN = "campaign"
    SETTING = "setting"
    INTEGRATION = "integration"
    SYSTEM = "system"
    AUTH = "auth"


# Ações que marcam o registro como relevante para RGPD
GDPR_ACTIONS = frozenset({
    AuditAction.CREATE_USER,
    AuditAction.USER_CREATED,
    AuditAction.USER_UPDATED,
    AuditAction.USER_DELETED,
    AuditAction.DATA_EXPORTED,
})

# Ações que sempre entram no relatório de segurança
SECURITY_EVENT_ACTIONS = frozenset({
    AuditAction.USER_LOGIN_FAILED,
    AuditAction.ACCESS_DENIED,
    AuditAction.SUSPICIOUS_ACTIVITY,
})

# Tentativas anônimas podem ficar sem user_id
ANONYMOUS_ACTIONS = frozenset({
    AuditAction.LOGIN_ATTEMPT,
    AuditAction.REGISTER_ATTEMPT,
})


def infer_severity(category: Any, success: bool) -> AuditSeverity:
    """
    Segurança ou falha -> high; alteração de dados / autorização -> medium;
    resto -> low.
    """
    category = AuditCategory(getattr(category, "value", category))
    if category == AuditCategory.SECURITY or not success:
        return AuditSeverity.HIGH
    if category in (AuditCategory.DATA_MODIFICATION, AuditCategory.AUTHORIZATION):
        return AuditSeverity.MEDIUM
    return AuditSeverity.LOW


# =============================================================================
# FATO DE AUDITORIA
# =============================================================================

@dataclass
class AuditFact:
    """Fato a registrar (ainda não gravado)."""

    action: AuditAction
    category: AuditCategory
    description: str
    user_email: str
    user_name: str
    user_id: Optional[int] = None
    resource_type: ResourceType = ResourceType.LEAD
    resource_id: Optional[int] = None
    resource_name: Optional[str] = None

    success: bool = True
    error_message: Optional[str] = None
    error_code: Optional[str] = None

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_url: Optional[str] = None
    request_method: Optional[str] = None
    session_id: Optional[str] = None
    processing_time_ms: Optional[int] = None

    severity: Optional[AuditSeverity] = None
    tags: List[str] = field(default_factory=list)

    previous_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    changed_fields: Optional[List[str]] = None

    gdpr_relevant: bool = False
    data_subject: Optional[str] = None
    # Email do recurso afetado (vira data_subject em ações RGPD)
    resource_email: Optional[str] = None

    retention_period_days: Optional[int] = None
    timestamp: Optional[datetime] = None

    @classmethod
    def for_actor(cls, actor, context=None, **kwargs) -> "AuditFact":
        """Monta o fato com identidade do ator e contexto da requisição."""
        origin = {}
        if context is not None:
            origin = {
                "ip_address": context.ip_address,
                "user_agent": context.user_agent,
                "request_url": context.request_url,
                "request_method": context.request_method,
                "session_id": context.session_id,
            }
        origin.update(kwargs)
        return cls(
            user_id=actor.id,
            user_email=actor.email,
            user_name=actor.name,
            **origin,
        )

    def normalized(self) -> "AuditFact":
        """Valida enums e aplica defaults derivados (severidade, RGPD)."""
        self.action = AuditAction(getattr(self.action, "value", self.action))
        self.category = AuditCategory(getattr(self.category, "value", self.category))
        self.resource_type = ResourceType(getattr(self.resource_type, "value", self.resource_type))

        if self.user_id is None and self.action not in ANONYMOUS_ACTIONS:
            raise ValueError(f"user_id obrigatório para a ação '{self.action.value}'")

        if self.severity is None:
            self.severity = infer_severity(self.category, self.success)
        else:
            self.severity = AuditSeverity(getattr(self.severity, "value", self.severity))

        if self.action in GDPR_ACTIONS:
            self.gdpr_relevant = True
            if not self.data_subject and self.resource_email:
                self.data_subject = self.resource_email

        if self.description and len(self.description) > DESCRIPTION_MAX_LENGTH:
            self.description = self.description[:DESCRIPTION_MAX_LENGTH]
        return self

    def to_log_dict(self) -> dict:
        """Versão para log (sem valores antigos/novos, que podem ter PII)."""
        return {
            "action": getattr(self.action, "value", self.action),
            "category": getattr(self.category, "value", self.category),
            "user_id": self.user_id,
            "resource_type": getattr(self.resource_type, "value", self.resource_type),
            "resource_id": self.resource_id,
            "success": self.success,
            "error_code": self.error_code,
            "changed_fields": self.changed_fields,
            "ip_address": self.ip_address,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class AuditWriteResult:
    """Resultado de uma gravação de auditoria (nunca vira exceção)."""
    ok: bool
    audit_id: Optional[int] = None
    attempts: int = 0
    error: Optional[AuditWriteFailure] = None


@dataclass
class SuspiciousActivity:
    user_id: Optional[int]
    ip_address: Optional[str]
    failed_attempts: int
    actions: List[str]
    last_attempt: datetime


# =============================================================================
# CONSULTA
# =============================================================================

class AuditQuery(BaseModel):
    """Filtros da tela de auditoria (admin)."""

    model_config = ConfigDict(extra="forbid")

    user_id: Optional[int] = None
    user_email: Optional[str] = None
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[int] = None
    category: Optional[AuditCategory] = None
    severity: Optional[AuditSeverity] = None
    action: Optional[AuditAction] = None
    success: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    include_archived: bool = True
    page: int = Field(1, ge=1)
    page_size: int = Field(50, ge=1, le=200)


class AuditPage(BaseModel):
    items: List[dict]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size if self.total else 0


def _in_range(query, start_date: Optional[datetime], end_date: Optional[datetime]):
    if start_date:
        query = query.where(AuditLog.timestamp >= start_date)
    if end_date:
        query = query.where(AuditLog.timestamp <= end_date)
    return query


# =============================================================================
# TRILHA DE AUDITORIA
# =============================================================================

class AuditTrail:
    """
    Grava e consulta registros de auditoria.

    Usage:
        trail = AuditTrail(get_session_factory())
        result = await trail.record(fact)
        if not result.ok:
            ...  # já foi para o dead-letter; a operação segue
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Escrita
    # -------------------------------------------------------------------------

    async def record(self, fact: AuditFact) -> AuditWriteResult:
        """
        Grava o fato em sessão própria. Nunca levanta exceção.
        """
        try:
            fact.normalized()
        except ValueError as e:
            return self._dead_letter(fact, attempts=0, reason=str(e))

        retries = max(1, self.settings.audit_write_retries)
        last_error = ""

        for attempt in range(1, retries + 1):
            try:
                async with self.session_factory() as session:
                    log_record = self._build_record(fact)
                    session.add(log_record)
                    await session.flush()
                    audit_id = log_record.id
                    await session.commit()
                    return AuditWriteResult(ok=True, audit_id=audit_id, attempts=attempt)
            except (SQLAlchemyError, OSError) as e:
                last_error = type(e).__name__
                logger.warning(
                    "Falha ao gravar auditoria, tentando novamente",
                    extra={"attempt": attempt, "error_type": last_error, "action": fact.action.value},
                )
                if attempt < retries:
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)

        return self._dead_letter(fact, attempts=retries, reason=last_error)

    def _build_record(self, fact: AuditFact) -> AuditLog:
        return AuditLog(
            user_id=fact.user_id,
            user_email=fact.user_email,
            user_name=fact.user_name,
            action=fact.action.value,
            resource_type=fact.resource_type.value,
            resource_id=fact.resource_id,
            resource_name=fact.resource_name,
            description=fact.description,
            success=fact.success,
            error_message=fact.error_message,
            error_code=fact.error_code,
            ip_address=fact.ip_address,
            user_agent=fact.user_agent,
            request_url=fact.request_url,
            request_method=fact.request_method,
            session_id=fact.session_id,
            processing_time_ms=fact.processing_time_ms,
            category=fact.category.value,
            severity=fact.severity.value,
            tags=list(dict.fromkeys(fact.tags)),
            previous_data=fact.previous_data,
            new_data=fact.new_data,
            changed_fields=fact.changed_fields,
            gdpr_relevant=fact.gdpr_relevant,
            data_subject=fact.data_subject,
            retention_period_days=fact.retention_period_days or self.settings.audit_retention_days,
            timestamp=fact.timestamp or utc_now(),
        )

    def _dead_letter(self, fact: AuditFact, attempts: int, reason: str) -> AuditWriteResult:
        error = AuditWriteFailure(
            "Registro de auditoria não gravado",
            details={"action": getattr(fact.action, "value", fact.action), "reason": reason},
        )
        dead_letter_logger.error(
            "Registro de auditoria perdido",
            extra={"audit_fact": fact.to_log_dict(), "attempts": attempts, "reason": reason},
        )
        return AuditWriteResult(ok=False, attempts=attempts, error=error)

    async def add_tags(self, audit_id: int, tags: List[str]) -> List[str]:
        """Acrescenta tags (sem duplicar). Único campo livre após a gravação."""
        async with self.session_factory() as session:
            log_record = await session.get(AuditLog, audit_id)
            if log_record is None:
                raise NotFoundError("Registro de auditoria não encontrado", details={"audit_id": audit_id})
            log_record.tags = list(dict.fromkeys([*(log_record.tags or []), *tags]))
            await session.commit()
            return list(log_record.tags)

    # -------------------------------------------------------------------------
    # Retenção
    # -------------------------------------------------------------------------

    async def archive(self, older_than_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """
        Marca como arquivados os registros mais antigos que o corte.
        Já arquivados não são tocados. Retorna quantos foram arquivados.
        """
        days = older_than_days if older_than_days is not None else self.settings.audit_retention_days
        now = now or utc_now()
        cutoff = now - timedelta(days=days)

        async with self.session_factory() as session:
            result = await session.execute(
                update(AuditLog)
                .where(AuditLog.timestamp < cutoff, AuditLog.is_archived == False)  # noqa: E712
                .values(is_archived=True, archived_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        logger.info("Registros de auditoria arquivados", extra={"count": result.rowcount, "days": days})
        return result.rowcount

    async def purge_expired(self, hard_expiry_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """
        Expiração longa: remove registros NÃO arquivados além do horizonte
        e também além da retenção do próprio registro.
        Único caminho destrutivo; arquivados são preservados.
        """
        days = hard_expiry_days if hard_expiry_days is not None else self.settings.audit_hard_expiry_days
        now = now or utc_now()
        cutoff = now - timedelta(days=days)

        async with self.session_factory() as session:
            result = await session.execute(
                select(AuditLog.id, AuditLog.timestamp, AuditLog.retention_period_days)
                .where(AuditLog.timestamp < cutoff, AuditLog.is_archived == False)  # noqa: E712
            )
            expired_ids = [
                row.id
                for row in result.all()
                if row.timestamp < now - timedelta(days=max(days, row.retention_period_days or 0))
            ]

            purged = 0
            if expired_ids:
                deleted = await session.execute(
                    delete(AuditLog)
                    .where(AuditLog.id.in_(expired_ids), AuditLog.is_archived == False)  # noqa: E712
                    .execution_options(synchronize_session=False)
                )
                purged = deleted.rowcount
            await session.commit()

        logger.warning("Registros de auditoria expirados removidos", extra={"count": purged, "days": days})
        return purged

    # -------------------------------------------------------------------------
    # Leitura
    # -------------------------------------------------------------------------

    async def _fetch(self, query) -> List[AuditLog]:
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def user_activity(
        self,
        user_id: int,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = select(AuditLog).where(AuditLog.user_id == user_id)
        query = _in_range(query, start_date, end_date)
        return await self._fetch(query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit))

    async def resource_history(self, resource_type: Any, resource_id: int) -> List[AuditLog]:
        resource_type = ResourceType(getattr(resource_type, "value", resource_type))
        query = select(AuditLog).where(
            AuditLog.resource_type == resource_type.value,
            AuditLog.resource_id == resource_id,
        )
        return await self._fetch(query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()))

    async def security_events(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AuditLog]:
        query = select(AuditLog).where(
            or_(
                AuditLog.severity.in_([AuditSeverity.HIGH.value, AuditSeverity.CRITICAL.value]),
                AuditLog.category == AuditCategory.SECURITY.value,
                AuditLog.action.in_([a.value for a in SECURITY_EVENT_ACTIONS]),
            )
        )
        query = _in_range(query, start_date, end_date)
        return await self._fetch(query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()))

    async def gdpr_subject_records(self, email: str) -> List[AuditLog]:
        """Tudo que diz respeito ao titular (pedido de acesso RGPD)."""
        query = select(AuditLog).where(
            or_(
                (AuditLog.gdpr_relevant == True) & (AuditLog.data_subject == email),  # noqa: E712
                AuditLog.user_email == email,
            )
        )
        return await self._fetch(query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()))

    async def query(self, filters: AuditQuery) -> AuditPage:
        """
        Busca logs de auditoria com filtros, paginada, mais recentes primeiro.
        """
        query = select(AuditLog)

        if filters.user_id is not None:
            query = query.where(AuditLog.user_id == filters.user_id)
        if filters.user_email:
            query = query.where(AuditLog.user_email == filters.user_email)
        if filters.resource_type:
            query = query.where(AuditLog.resource_type == filters.resource_type.value)
        if filters.resource_id is not None:
            query = query.where(AuditLog.resource_id == filters.resource_id)
        if filters.category:
            query = query.where(AuditLog.category == filters.category.value)
        if filters.severity:
            query = query.where(AuditLog.severity == filters.severity.value)
        if filters.action:
            query = query.where(AuditLog.action == filters.action.value)
        if filters.success is not None:
            query = query.where(AuditLog.success == filters.success)
        if not filters.include_archived:
            query = query.where(AuditLog.is_archived == False)  # noqa: E712
        query = _in_range(query, filters.start_date, filters.end_date)

        async with self.session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(query.subquery()))
            result = await session.execute(
                query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
                .offset((filters.page - 1) * filters.page_size)
                .limit(filters.page_size)
            )
            items = [log.to_dict() for log in result.scalars().all()]

        return AuditPage(items=items, total=total or 0, page=filters.page, page_size=filters.page_size)

    # -------------------------------------------------------------------------
    # Estatísticas
    # -------------------------------------------------------------------------

    async def activity_stats(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[dict]:
        """Contagem por ação e por dia, com sucessos e erros."""
        day = func.date(AuditLog.timestamp)
        success_count = func.sum(case((AuditLog.success == True, 1), else_=0))  # noqa: E712
        query = select(
            AuditLog.action,
            day.label("day"),
            func.count(AuditLog.id).label("count"),
            success_count.label("success_count"),
        ).group_by(AuditLog.action, day)
        query = _in_range(query, start_date, end_date)

        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        stats = [
            {
                "action": row.action,
                "date": str(row.day),
                "count": row.count,
                "success_count": row.success_count or 0,
                "error_count": row.count - (row.success_count or 0),
            }
            for row in rows
        ]
        stats.sort(key=lambda s: (s["date"], s["count"]), reverse=True)
        return stats

    async def top_actors(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 10,
    ) -> List[dict]:
        """Usuários com mais ações no período."""
        total = func.count(AuditLog.id)
        success_count = func.sum(case((AuditLog.success == True, 1), else_=0))  # noqa: E712
        query = select(
            AuditLog.user_id,
            func.max(AuditLog.user_name).label("user_name"),
            func.max(AuditLog.user_email).label("user_email"),
            total.label("total_actions"),
            success_count.label("successful_actions"),
            func.max(AuditLog.timestamp).label("last_activity"),
        ).where(AuditLog.user_id.isnot(None)).group_by(AuditLog.user_id)
        query = _in_range(query, start_date, end_date)
        query = query.order_by(total.desc(), AuditLog.user_id).limit(limit)

        async with self.session_factory() as session:
            rows = (await session.execute(query)).all()

        return [
            {
                "user_id": row.user_id,
                "user_name": row.user_name,
                "user_email": row.user_email,
                "total_actions": row.total_actions,
                "successful_actions": row.successful_actions or 0,
                "failed_actions": row.total_actions - (row.successful_actions or 0),
                "last_activity": row.last_activity,
            }
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Atividade suspeita
    # -------------------------------------------------------------------------

    async def find_suspicious_activity(
        self,
        window_minutes: Optional[int] = None,
        threshold: Optional[int] = None,
        now: Optional[datetime] = None,
        category: Optional[AuditCategory] = None,
    ) -> List[SuspiciousActivity]:
        """
        Falhas agrupadas por (user_id, ip) dentro da janela; só grupos com
        pelo menos `threshold` falhas. Mais falhas primeiro.
        """
        window = window_minutes if window_minutes is not None else self.settings.suspicious_window_minutes
        minimum = threshold if threshold is not None else self.settings.suspicious_failure_threshold
        since = (now or utc_now()) - timedelta(minutes=window)

        query = select(AuditLog).where(
            AuditLog.timestamp >= since,
            AuditLog.success == False,  # noqa: E712
        )
        if category is not None:
            query = query.where(AuditLog.category == category.value)
        failures = await self._fetch(query.order_by(AuditLog.timestamp))

        groups: Dict[tuple, List[AuditLog]] = defaultdict(list)
        for log in failures:
            groups[(log.user_id, log.ip_address)].append(log)

        suspicious = [
            SuspiciousActivity(
                user_id=user_id,
                ip_address=ip_address,
                failed_attempts=len(logs),
                actions=[log.action for log in logs],
                last_attempt=max(log.timestamp for log in logs),
            )
            for (user_id, ip_address), logs in groups.items()
            if len(logs) >= minimum
        ]
        suspicious.sort(key=lambda s: s.failed_attempts, reverse=True)

        if suspicious:
            logger.warning("Atividade suspeita detectada", extra={"groups": len(suspicious)})
        return suspicious

    async def lock_recommendations(self, now: Optional[datetime] = None) -> List[SuspiciousActivity]:
        """
        Atores com falhas de autenticação suficientes para bloqueio.
        Conta por usuário, de qualquer IP; tentativas anônimas não entram.
        O bloqueio em si é aplicado por quem gerencia usuários.

        `ip_address` traz os IPs vistos, separados por vírgula.
        """
        since = (now or utc_now()) - timedelta(minutes=self.settings.suspicious_window_minutes)
        failures = await self._fetch(
            select(AuditLog)
            .where(
                AuditLog.timestamp >= since,
                AuditLog.success == False,  # noqa: E712
                AuditLog.category == AuditCategory.AUTHENTICATION.value,
                AuditLog.user_id.is_not(None),
            )
            .order_by(AuditLog.timestamp)
        )

        by_user: Dict[int, List[AuditLog]] = defaultdict(list)
        for log in failures:
            by_user[log.user_id].append(log)

        recommendations = [
            SuspiciousActivity(
                user_id=user_id,
                ip_address=", ".join(dict.fromkeys(log.ip_address for log in logs if log.ip_address)) or None,
                failed_attempts=len(logs),
                actions=[log.action for log in logs],
                last_attempt=max(log.timestamp for log in logs),
            )
            for user_id, logs in by_user.items()
            if len(logs) >= self.settings.lock_failure_threshold
        ]
        recommendations.sort(key=lambda s: s.failed_attempts, reverse=True)
        return recommendations


# Instância do processo
_audit_trail: Optional[AuditTrail] = None


def get_audit_trail() -> AuditTrail:
    """Retorna a trilha do processo, usando a fábrica de sessões padrão."""
    global _audit_trail
    if _audit_trail is None:
        from src.infrastructure.database import get_session_factory
        _audit_trail = AuditTrail(get_session_factory())
    return _audit_trail
