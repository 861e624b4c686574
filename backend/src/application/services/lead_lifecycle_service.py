"""
CICLO DE VIDA DO LEAD
======================

Orquestra as operações sobre leads:

    captura -> distribuição -> score -> criptografia -> grava -> auditoria
    mudança  -> máquina de estados -> grava (condicional) -> auditoria
    leitura  -> descriptografa -> auditoria de acesso

Regras de escrita:
- Toda alteração do lead é um UPDATE condicionado à `version` lida.
  Se outra requisição gravou antes, o lead é relido e as regras são
  reavaliadas (até MAX_WRITE_ATTEMPTS vezes).
- A auditoria é gravada DEPOIS do commit, em sessão própria, e nunca
  derruba a operação.
- Falhas tipadas (validação, permissão, distribuição...) geram um
  registro de auditoria com success=False e são propagadas.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.application.schemas import (
    Actor,
    FollowUpCreate,
    LeadCapturePayload,
    LeadFilters,
    LeadPage,
    LeadUpdatePayload,
    LeadView,
    NoteCreate,
    RequestContext,
)
from src.config import Settings, get_settings
from src.domain.entities import (
    Lead,
    LeadFollowUp,
    LeadNote,
    LeadStatus,
    NoteType,
    User,
    UserRole,
    utc_now,
)
from src.domain.exceptions import (
    ConcurrentModificationError,
    LeadEngineError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from src.domain.services.lead_scoring import SCORE_INPUT_FIELDS, score_lead
from src.domain.services.lead_state_machine import TransitionPlan, plan_transition
from src.infrastructure.services.audit_service import (
    AuditAction,
    AuditCategory,
    AuditFact,
    AuditTrail,
    ResourceType,
    get_audit_trail,
)
from src.infrastructure.services.distribution_service import assign, get_assignable_user
from src.infrastructure.services.encryption_service import (
    PII_FIELDS,
    FieldCipher,
    get_field_cipher,
)
from src.services.permissions import Capability, PermissionService, permission_service

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

# Campos que o usuário nunca altera diretamente
PROTECTED_FIELDS = {
    "lead_score": "lead_score é calculado automaticamente",
    "assigned_to": "Use a reatribuição para trocar o responsável",
    "assigned_team": "A equipe acompanha o responsável (use a reatribuição)",
    "version": "version é controlado pelo sistema",
    "is_archived": "Use o arquivamento do lead",
}

# Não podem ser apagados (NOT NULL)
REQUIRED_FIELDS = frozenset({"artist_name", "email", "budget_currency"})

# PII nunca vai para a auditoria
_MASK = "***"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    """Converte payload para o schema, traduzindo o erro do pydantic."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise ValidationError("Dados inválidos", details={"errors": errors}) from None


def _audit_value(field_name: str, value: Any) -> Any:
    """Valor seguro para a auditoria: sem PII e serializável em JSON."""
    if field_name in PII_FIELDS:
        return _MASK if value else value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@dataclass
class PreparedWrite:
    """Valores prontos para o UPDATE condicional + dados para a auditoria."""
    values: Dict[str, Any] = field(default_factory=dict)
    changed_fields: List[str] = field(default_factory=list)
    previous_data: Dict[str, Any] = field(default_factory=dict)
    new_data: Dict[str, Any] = field(default_factory=dict)
    plan: Optional[TransitionPlan] = None
    note: Optional[str] = None


class LeadLifecycleService:
    """
    Operações do ciclo de vida do lead.

    Usage:
        service = LeadLifecycleService(audit=trail, settings=settings, cipher=cipher)
        view = await service.capture_lead(db, payload, actor, context)
        view = await service.transition_status(db, view.id, "contacted", actor)
    """

    def __init__(
        self,
        audit: AuditTrail,
        settings: Optional[Settings] = None,
        cipher: Optional[FieldCipher] = None,
        permissions: Optional[PermissionService] = None,
    ):
        self.audit = audit
        self.settings = settings or get_settings()
        self.cipher = cipher or get_field_cipher()
        self.permissions = permissions or permission_service

    # =========================================================================
    # CAPTURA
    # =========================================================================

    async def capture_lead(
        self,
        db: AsyncSession,
        payload: Any,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """
        Cria o lead: distribui, calcula score, criptografa PII e grava.

        Raises:
            ValidationError, AssignmentUnavailable, CryptoFailure, PermissionDenied
        """
        started = time.perf_counter()
        try:
            self.permissions.require(actor, Capability.LEADS_CREATE)
            data = _parse(LeadCapturePayload, payload).model_dump(mode="json", exclude_none=True)

            assignment = await assign(db, data["platform"], self.settings)
            score = score_lead(data)

            # Sem PII em texto claro no banco: falha aqui aborta a captura
            data = self.cipher.encrypt_fields(data, fields=PII_FIELDS, context="lead")

            now = utc_now()
            lead = Lead(
                **data,
                version=1,
                assigned_to=assignment.owner_id,
                assigned_team=assignment.team.value,
                assigned_at=now,
                assignment_method=assignment.method,
                status=LeadStatus.NEW.value,
                lead_score=score,
                follow_up_count=0,
                is_archived=False,
                last_activity_date=now,
                created_at=now,
                updated_at=now,
            )
            db.add(lead)
            await db.flush()

            await db.execute(
                update(User)
                .where(User.id == assignment.owner_id)
                .values(leads_created=User.leads_created + 1)
            )
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_CREATED, None, e, started)
            raise

        logger.info(
            "Lead capturado",
            extra={
                "lead_id": lead.id,
                "owner_id": assignment.owner_id,
                "team": assignment.team.value,
                "method": assignment.method,
                "lead_score": score,
            },
        )

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_CREATED,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=f"Lead {lead.artist_name} criado ({lead.platform})",
                new_data={
                    "platform": lead.platform,
                    "source": lead.source,
                    "assigned_to": assignment.owner_id,
                    "assigned_team": assignment.team.value,
                    "assignment_method": assignment.method,
                    "fallback_used": assignment.fallback_used,
                    "lead_score": score,
                },
                processing_time_ms=_elapsed_ms(started),
            )
        )

        return self._to_view(await self._load_lead(db, lead.id, with_children=True), actor)

    # =========================================================================
    # ALTERAÇÕES
    # =========================================================================

    async def update_lead(
        self,
        db: AsyncSession,
        lead_id: int,
        payload: Any,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """
        Atualização parcial. Se `status` vier no payload, passa pela
        máquina de estados (mesmas pré-condições da transição).
        """
        started = time.perf_counter()
        try:
            if isinstance(payload, dict):
                for name, reason in PROTECTED_FIELDS.items():
                    if name in payload:
                        raise ValidationError(reason, details={"field": name})
            changes = _parse(LeadUpdatePayload, payload).model_dump(mode="json", exclude_unset=True)
        except ValidationError as e:
            await self._record_failure(actor, context, AuditAction.LEAD_UPDATED, lead_id, e, started)
            raise

        return await self._mutate(
            db, lead_id, changes, actor, context, started, require_transition=False
        )

    async def transition_status(
        self,
        db: AsyncSession,
        lead_id: int,
        new_status: Any,
        actor: Actor,
        context: Optional[RequestContext] = None,
        deal_value: Optional[float] = None,
        lost_reason: Optional[Any] = None,
        lost_reason_details: Optional[str] = None,
    ) -> LeadView:
        """
        Muda o status do lead.

        Raises:
            ValidationError: transição não permitida ou pré-condição ausente
            ConcurrentModificationError: conflito persistente de versão
        """
        started = time.perf_counter()
        changes: Dict[str, Any] = {"status": getattr(new_status, "value", new_status)}
        if deal_value is not None:
            changes["deal_value"] = deal_value
        if lost_reason is not None:
            changes["lost_reason"] = getattr(lost_reason, "value", lost_reason)
        if lost_reason_details:
            changes["lost_reason_details"] = lost_reason_details

        return await self._mutate(
            db, lead_id, changes, actor, context, started, require_transition=True
        )

    async def _mutate(
        self,
        db: AsyncSession,
        lead_id: int,
        changes: Dict[str, Any],
        actor: Actor,
        context: Optional[RequestContext],
        started: float,
        require_transition: bool,
    ) -> LeadView:
        action = AuditAction.LEAD_STATUS_CHANGED if require_transition else AuditAction.LEAD_UPDATED
        try:
            lead, prepared = await self._write_with_retry(
                db,
                lead_id,
                actor,
                Capability.LEADS_UPDATE,
                lambda current, now: self._prepare_changes(current, changes, now, require_transition),
            )
            if prepared is None:
                return self._to_view(await self._load_lead(db, lead_id, with_children=True), actor)

            plan = prepared.plan
            if plan is not None:
                action = AuditAction.LEAD_STATUS_CHANGED
                db.add(LeadNote(
                    lead_id=lead.id,
                    author_id=actor.id,
                    content=plan.note,
                    type=NoteType.NOTE.value,
                    is_system=True,
                    created_at=prepared.values["last_activity_date"],
                ))
                if plan.is_conversion:
                    await db.execute(
                        update(User)
                        .where(User.id == lead.assigned_to)
                        .values(
                            leads_converted=User.leads_converted + 1,
                            total_revenue=User.total_revenue + plan.converted_value,
                        )
                    )
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, action, lead_id, e, started)
            raise

        if plan is not None:
            description = plan.note
            logger.info(
                "Status do lead alterado",
                extra={
                    "lead_id": lead.id,
                    "old_status": plan.old_status.value,
                    "new_status": plan.new_status.value,
                },
            )
        else:
            description = f"Lead {lead.artist_name} atualizado: {', '.join(prepared.changed_fields)}"

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=action,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=description,
                previous_data=prepared.previous_data,
                new_data=prepared.new_data,
                changed_fields=prepared.changed_fields,
                processing_time_ms=_elapsed_ms(started),
            )
        )

        return self._to_view(await self._load_lead(db, lead.id, with_children=True), actor)

    def _prepare_changes(
        self,
        lead: Lead,
        changes: Dict[str, Any],
        now: datetime,
        require_transition: bool,
    ) -> Optional[PreparedWrite]:
        """
        Valida as mudanças contra o estado ATUAL do lead e monta o UPDATE.
        Retorna None quando nada muda.
        """
        self._ensure_not_archived(lead)
        values = dict(changes)

        plan = None
        new_status = values.pop("status", None)
        if new_status is not None and (require_transition or new_status != lead.status):
            plan = plan_transition(
                lead,
                new_status,
                now,
                deal_value=values.get("deal_value"),
                lost_reason=values.get("lost_reason"),
                lost_reason_details=values.get("lost_reason_details"),
                strict=self.settings.lead_strict_transitions,
            )
            values.update(plan.changes)

        for name in REQUIRED_FIELDS:
            if name in values and values[name] is None:
                raise ValidationError(f"Campo obrigatório: {name}", details={"field": name})

        if values.get("social_media") is not None:
            values["social_media"] = {**(lead.social_media or {}), **values["social_media"]}

        # Só o que realmente muda
        for name in list(values):
            current = getattr(lead, name)
            if name in PII_FIELDS:
                current = self.cipher.decrypt(current, context=f"lead.{name}")
            if current == values[name]:
                del values[name]

        if not values:
            return None

        self._check_closed_invariants(lead, values)

        if "commission" not in values and values.keys() & {"deal_value", "commission_rate"}:
            deal_value = values.get("deal_value", lead.deal_value)
            rate = values.get("commission_rate", lead.commission_rate)
            if deal_value is not None and rate is not None:
                values["commission"] = round(deal_value * rate / 100, 2)

        changed_fields = sorted(name for name in values if name != "last_activity_date")
        prepared = PreparedWrite(
            changed_fields=changed_fields,
            previous_data={name: _audit_value(name, getattr(lead, name)) for name in changed_fields},
            new_data={name: _audit_value(name, values[name]) for name in changed_fields},
            plan=plan,
        )

        inputs = {name: values.get(name, getattr(lead, name)) for name in SCORE_INPUT_FIELDS}
        score = score_lead(inputs)
        if score != lead.lead_score:
            values["lead_score"] = score
            prepared.previous_data["lead_score"] = lead.lead_score
            prepared.new_data["lead_score"] = score

        values["last_activity_date"] = now
        for name in PII_FIELDS:
            if values.get(name):
                values[name] = self.cipher.encrypt(values[name], context=f"lead.{name}")

        prepared.values = values
        return prepared

    def _check_closed_invariants(self, lead: Lead, values: Dict[str, Any]) -> None:
        """won exige deal_value > 0; lost exige motivo. Vale para qualquer escrita."""
        status = values.get("status", lead.status)
        if status == LeadStatus.WON.value:
            deal_value = values.get("deal_value", lead.deal_value)
            if deal_value is None or deal_value <= 0:
                raise ValidationError(
                    "Lead ganho precisa de deal_value positivo",
                    details={"field": "deal_value"},
                )
        elif status == LeadStatus.LOST.value:
            if not values.get("lost_reason", lead.lost_reason):
                raise ValidationError(
                    "Lead perdido precisa de lost_reason",
                    details={"field": "lost_reason"},
                )

    # =========================================================================
    # REATRIBUIÇÃO / ARQUIVAMENTO
    # =========================================================================

    async def reassign_lead(
        self,
        db: AsyncSession,
        lead_id: int,
        new_owner_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None,
        reason: Optional[str] = None,
    ) -> LeadView:
        """Troca o responsável (e a equipe junto)."""
        started = time.perf_counter()
        try:
            target = await get_assignable_user(db, new_owner_id)

            def prepare(lead: Lead, now: datetime) -> PreparedWrite:
                self._ensure_not_archived(lead)
                if lead.assigned_to == target.id:
                    raise ValidationError(
                        "Lead já está com este responsável",
                        details={"user_id": target.id},
                    )
                values = {
                    "assigned_to": target.id,
                    "assigned_team": target.team,
                    "assigned_at": now,
                    "assignment_method": "manual",
                    "last_activity_date": now,
                }
                note = f"Lead reassigned from user {lead.assigned_to} to user {target.id}"
                if reason:
                    note = f"{note}: {reason}"
                return PreparedWrite(
                    values=values,
                    changed_fields=["assigned_team", "assigned_to"],
                    previous_data={"assigned_to": lead.assigned_to, "assigned_team": lead.assigned_team},
                    new_data={"assigned_to": target.id, "assigned_team": target.team},
                    note=note,
                )

            lead, prepared = await self._write_with_retry(
                db, lead_id, actor, Capability.LEADS_REASSIGN, prepare
            )
            db.add(LeadNote(
                lead_id=lead.id,
                author_id=actor.id,
                content=prepared.note,
                type=NoteType.NOTE.value,
                is_system=True,
                created_at=prepared.values["last_activity_date"],
            ))
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_REASSIGNED, lead_id, e, started)
            raise

        logger.info(
            "Lead reatribuído",
            extra={"lead_id": lead.id, "from": prepared.previous_data["assigned_to"], "to": target.id},
        )
        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_REASSIGNED,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=prepared.note,
                previous_data=prepared.previous_data,
                new_data=prepared.new_data,
                changed_fields=prepared.changed_fields,
                processing_time_ms=_elapsed_ms(started),
            )
        )
        return self._to_view(await self._load_lead(db, lead.id, with_children=True), actor)

    async def archive_lead(
        self,
        db: AsyncSession,
        lead_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """Soft delete: o lead sai do funil e da contagem de carga."""
        started = time.perf_counter()
        try:
            def prepare(lead: Lead, now: datetime) -> Optional[PreparedWrite]:
                if lead.is_archived:
                    return None
                return PreparedWrite(
                    values={
                        "is_archived": True,
                        "archived_at": now,
                        "archived_by": actor.id,
                        "last_activity_date": now,
                    },
                    changed_fields=["archived_at", "archived_by", "is_archived"],
                    previous_data={"is_archived": False},
                    new_data={"is_archived": True, "archived_by": actor.id},
                )

            lead, prepared = await self._write_with_retry(
                db, lead_id, actor, Capability.LEADS_DELETE, prepare
            )
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_ARCHIVED, lead_id, e, started)
            raise

        if prepared is not None:
            await self._record(
                AuditFact.for_actor(
                    actor,
                    context,
                    action=AuditAction.LEAD_ARCHIVED,
                    category=AuditCategory.DATA_MODIFICATION,
                    resource_type=ResourceType.LEAD,
                    resource_id=lead.id,
                    resource_name=lead.artist_name,
                    description=f"Lead {lead.artist_name} arquivado",
                    previous_data=prepared.previous_data,
                    new_data=prepared.new_data,
                    changed_fields=prepared.changed_fields,
                    processing_time_ms=_elapsed_ms(started),
                )
            )
        return self._to_view(await self._load_lead(db, lead_id, with_children=True), actor)

    # =========================================================================
    # NOTAS E FOLLOW-UPS
    # =========================================================================

    async def add_note(
        self,
        db: AsyncSession,
        lead_id: int,
        payload: Any,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        started = time.perf_counter()
        try:
            note = _parse(NoteCreate, payload)
            lead = await self._load_lead(db, lead_id)
            self.permissions.require_lead_access(actor, lead, Capability.LEADS_UPDATE)

            now = utc_now()
            db.add(LeadNote(
                lead_id=lead.id,
                author_id=actor.id,
                content=note.content,
                type=note.type.value,
                is_private=note.is_private,
                is_system=False,
                created_at=now,
            ))
            await self._touch(db, lead.id, last_activity_date=now)
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_NOTE_ADDED, lead_id, e, started)
            raise

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_NOTE_ADDED,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=f"Nota ({note.type.value}) adicionada ao lead {lead.artist_name}",
                new_data={"type": note.type.value, "is_private": note.is_private},
                processing_time_ms=_elapsed_ms(started),
            )
        )
        return self._to_view(await self._load_lead(db, lead_id, with_children=True), actor)

    async def schedule_follow_up(
        self,
        db: AsyncSession,
        lead_id: int,
        payload: Any,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """Agenda a próxima ação. A data precisa estar no futuro."""
        started = time.perf_counter()
        try:
            follow_up = _parse(FollowUpCreate, payload)
            scheduled_for = _as_naive_utc(follow_up.scheduled_for)
            now = utc_now()
            if scheduled_for <= now:
                raise ValidationError(
                    "A data do follow-up precisa ser futura",
                    details={"field": "scheduled_for"},
                )

            lead = await self._load_lead(db, lead_id)
            self.permissions.require_lead_access(actor, lead, Capability.LEADS_UPDATE)
            self._ensure_not_archived(lead)

            db.add(LeadFollowUp(
                lead_id=lead.id,
                scheduled_by=actor.id,
                scheduled_for=scheduled_for,
                type=follow_up.type.value,
                description=follow_up.description,
                completed=False,
                created_at=now,
            ))
            await self._touch(
                db,
                lead.id,
                next_follow_up=scheduled_for,
                next_follow_up_type=follow_up.type.value,
                follow_up_count=Lead.follow_up_count + 1,
                last_activity_date=now,
            )
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_FOLLOWUP_SCHEDULED, lead_id, e, started)
            raise

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_FOLLOWUP_SCHEDULED,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=f"Follow-up ({follow_up.type.value}) agendado para {scheduled_for.isoformat()}",
                new_data={"scheduled_for": scheduled_for.isoformat(), "type": follow_up.type.value},
                changed_fields=["follow_up_count", "next_follow_up", "next_follow_up_type"],
                processing_time_ms=_elapsed_ms(started),
            )
        )
        return self._to_view(await self._load_lead(db, lead_id, with_children=True), actor)

    async def complete_follow_up(
        self,
        db: AsyncSession,
        lead_id: int,
        follow_up_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """Conclui um follow-up e registra o contato no lead."""
        started = time.perf_counter()
        try:
            lead = await self._load_lead(db, lead_id)
            self.permissions.require_lead_access(actor, lead, Capability.LEADS_UPDATE)

            follow_up = await db.get(LeadFollowUp, follow_up_id)
            if follow_up is None or follow_up.lead_id != lead.id:
                raise NotFoundError(
                    "Follow-up não encontrado",
                    details={"lead_id": lead_id, "follow_up_id": follow_up_id},
                )
            if follow_up.completed:
                raise ValidationError(
                    "Follow-up já concluído",
                    details={"follow_up_id": follow_up_id},
                )

            now = utc_now()
            follow_up.completed = True
            follow_up.completed_at = now
            follow_up.completed_by = actor.id
            await db.flush()

            # Próximo follow-up pendente (se houver)
            pending = await db.execute(
                select(LeadFollowUp)
                .where(LeadFollowUp.lead_id == lead.id, LeadFollowUp.completed == False)  # noqa: E712
                .order_by(LeadFollowUp.scheduled_for)
                .limit(1)
            )
            next_pending = pending.scalar_one_or_none()

            await self._touch(
                db,
                lead.id,
                last_contact_date=now,
                last_activity_date=now,
                next_follow_up=next_pending.scheduled_for if next_pending else None,
                next_follow_up_type=next_pending.type if next_pending else None,
            )
            await db.commit()
        except LeadEngineError as e:
            await db.rollback()
            await self._record_failure(actor, context, AuditAction.LEAD_FOLLOWUP_COMPLETED, lead_id, e, started)
            raise

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_FOLLOWUP_COMPLETED,
                category=AuditCategory.DATA_MODIFICATION,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=f"Follow-up {follow_up_id} concluído",
                new_data={"follow_up_id": follow_up_id, "completed_at": now.isoformat()},
                changed_fields=["last_contact_date", "next_follow_up"],
                processing_time_ms=_elapsed_ms(started),
            )
        )
        return self._to_view(await self._load_lead(db, lead_id, with_children=True), actor)

    # =========================================================================
    # LEITURA
    # =========================================================================

    async def get_lead(
        self,
        db: AsyncSession,
        lead_id: int,
        actor: Actor,
        context: Optional[RequestContext] = None,
    ) -> LeadView:
        """Lead completo, PII descriptografada. Acesso auditado."""
        started = time.perf_counter()
        try:
            lead = await self._load_lead(db, lead_id, with_children=True)
            self.permissions.require_lead_access(actor, lead, Capability.LEADS_READ)
        except LeadEngineError as e:
            await self._record_failure(actor, context, AuditAction.LEAD_VIEWED, lead_id, e, started)
            raise

        view = self._to_view(lead, actor)
        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_VIEWED,
                category=AuditCategory.DATA_ACCESS,
                resource_type=ResourceType.LEAD,
                resource_id=lead.id,
                resource_name=lead.artist_name,
                description=f"Consulta ao lead {lead.artist_name}",
                processing_time_ms=_elapsed_ms(started),
            )
        )
        return view

    async def list_active_leads(
        self,
        db: AsyncSession,
        actor: Actor,
        filters: Optional[Any] = None,
        context: Optional[RequestContext] = None,
    ) -> LeadPage:
        """
        Leads não arquivados visíveis ao ator, maior score primeiro.
        Admin vê todos, gestor a equipe, agente os próprios.
        """
        filters = _parse(LeadFilters, filters or {})
        self.permissions.require(actor, Capability.LEADS_READ)

        query = self._scoped(select(Lead).where(Lead.is_archived == False), actor)  # noqa: E712
        if filters.status:
            query = query.where(Lead.status == filters.status.value)
        if filters.platform:
            query = query.where(Lead.platform == filters.platform.value)
        if filters.source:
            query = query.where(Lead.source == filters.source.value)
        if filters.team:
            query = query.where(Lead.assigned_team == filters.team.value)
        if filters.assigned_to is not None:
            query = query.where(Lead.assigned_to == filters.assigned_to)
        if filters.min_score is not None:
            query = query.where(Lead.lead_score >= filters.min_score)
        if filters.overdue_only:
            query = query.where(
                Lead.next_follow_up < utc_now(),
                Lead.status.notin_([LeadStatus.WON.value, LeadStatus.LOST.value]),
            )

        total = await db.scalar(select(func.count()).select_from(query.subquery()))
        result = await db.execute(
            query.options(selectinload(Lead.notes), selectinload(Lead.follow_ups))
            .order_by(Lead.lead_score.desc(), Lead.created_at.desc(), Lead.id.desc())
            .offset((filters.page - 1) * filters.page_size)
            .limit(filters.page_size)
        )
        items = [self._to_view(lead, actor) for lead in result.scalars().all()]

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=AuditAction.LEAD_VIEWED,
                category=AuditCategory.DATA_ACCESS,
                resource_type=ResourceType.LEAD,
                description=f"Listagem de leads ativos ({len(items)} de {total or 0})",
            )
        )
        return LeadPage(items=items, total=total or 0, page=filters.page, page_size=filters.page_size)

    async def lead_stats(
        self,
        db: AsyncSession,
        actor: Actor,
        owner_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        """Resumo do funil (leads não arquivados)."""
        self.permissions.require(actor, Capability.ANALYTICS_READ)

        query = self._scoped(select(Lead).where(Lead.is_archived == False), actor)  # noqa: E712
        if owner_id is not None:
            query = query.where(Lead.assigned_to == owner_id)
        if start_date and end_date:
            query = query.where(Lead.created_at >= start_date, Lead.created_at <= end_date)
        scoped = query.subquery()

        status_rows = await db.execute(
            select(scoped.c.status, func.count()).group_by(scoped.c.status)
        )
        by_status = {status.value: 0 for status in LeadStatus}
        for status, count in status_rows.all():
            by_status[status] = count

        totals = (await db.execute(
            select(
                func.count(),
                func.sum(scoped.c.deal_value),
                func.avg(scoped.c.deal_value),
                func.avg(scoped.c.lead_score),
            )
        )).one()
        total, total_value, avg_deal_value, avg_lead_score = totals

        closed = by_status[LeadStatus.WON.value] + by_status[LeadStatus.LOST.value]
        return {
            "total": total,
            "by_status": by_status,
            "total_value": float(total_value or 0),
            "avg_deal_value": round(float(avg_deal_value), 2) if avg_deal_value is not None else 0.0,
            "avg_lead_score": round(float(avg_lead_score), 2) if avg_lead_score is not None else 0.0,
            "win_rate": round(by_status[LeadStatus.WON.value] / closed * 100, 2) if closed else 0.0,
        }

    # =========================================================================
    # INTERNOS
    # =========================================================================

    def _scoped(self, query, actor: Actor):
        role = UserRole(getattr(actor.role, "value", actor.role))
        if role == UserRole.ADMIN:
            return query
        if role == UserRole.MANAGER:
            return query.where(Lead.assigned_team == getattr(actor.team, "value", actor.team))
        return query.where(Lead.assigned_to == actor.id)

    async def _load_lead(self, db: AsyncSession, lead_id: int, with_children: bool = False) -> Lead:
        query = select(Lead).where(Lead.id == lead_id).execution_options(populate_existing=True)
        if with_children:
            query = query.options(selectinload(Lead.notes), selectinload(Lead.follow_ups))
        lead = (await db.execute(query)).scalar_one_or_none()
        if lead is None:
            raise NotFoundError("Lead não encontrado", details={"lead_id": lead_id})
        return lead

    @staticmethod
    def _ensure_not_archived(lead: Lead) -> None:
        if lead.is_archived:
            raise ValidationError("Lead arquivado não pode ser alterado", details={"lead_id": lead.id})

    async def _conditional_update(self, db: AsyncSession, lead: Lead, values: Dict[str, Any]) -> bool:
        """UPDATE ... WHERE id = :id AND version = :lida. True se gravou."""
        result = await db.execute(
            update(Lead)
            .where(Lead.id == lead.id, Lead.version == lead.version)
            .values(**values, version=Lead.version + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _touch(self, db: AsyncSession, lead_id: int, **values) -> None:
        """Atualização atômica que não depende do estado lido (notas, follow-ups)."""
        await db.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(**values, version=Lead.version + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    async def _write_with_retry(self, db: AsyncSession, lead_id: int, actor: Actor, capability: Capability, prepare):
        """
        Lê, valida e grava condicionalmente. Em conflito de versão relê e
        reavalia tudo contra o estado novo.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            lead = await self._load_lead(db, lead_id)
            self.permissions.require_lead_access(actor, lead, capability)

            prepared = prepare(lead, utc_now())
            if prepared is None:
                return lead, None

            if await self._conditional_update(db, lead, prepared.values):
                return lead, prepared

            await db.rollback()
            logger.info(
                "Conflito de versão ao gravar lead, relendo",
                extra={"lead_id": lead_id, "attempt": attempt},
            )

        raise ConcurrentModificationError(
            "O lead foi alterado por outra operação; tente novamente",
            details={"lead_id": lead_id, "attempts": MAX_WRITE_ATTEMPTS},
        )

    def _to_view(self, lead: Lead, actor: Optional[Actor] = None) -> LeadView:
        view = LeadView.model_validate(lead)
        decrypted = {
            name: self.cipher.decrypt(getattr(lead, name), context=f"lead.{name}")
            for name in PII_FIELDS
        }
        if actor is not None and UserRole(getattr(actor.role, "value", actor.role)) != UserRole.ADMIN:
            decrypted["notes"] = [
                note for note in view.notes
                if not note.is_private or note.author_id == actor.id
            ]
        return view.model_copy(update=decrypted)

    async def _record(self, fact: AuditFact) -> None:
        result = await self.audit.record(fact)
        if not result.ok:
            # Já foi para o dead-letter; a operação segue
            logger.warning(
                "Operação concluída sem registro de auditoria",
                extra={"action": fact.to_log_dict()["action"], "resource_id": fact.resource_id},
            )

    async def _record_failure(
        self,
        actor: Actor,
        context: Optional[RequestContext],
        action: AuditAction,
        lead_id: Optional[int],
        error: LeadEngineError,
        started: float,
    ) -> None:
        if isinstance(error, PermissionDenied):
            category = AuditCategory.AUTHORIZATION
            action_taken = AuditAction.ACCESS_DENIED
        elif action == AuditAction.LEAD_VIEWED:
            category = AuditCategory.DATA_ACCESS
            action_taken = action
        else:
            category = AuditCategory.DATA_MODIFICATION
            action_taken = action

        await self._record(
            AuditFact.for_actor(
                actor,
                context,
                action=action_taken,
                category=category,
                resource_type=ResourceType.LEAD,
                resource_id=lead_id,
                description=f"Falha em {action.value}: {error.message}",
                success=False,
                error_message=error.message,
                error_code=error.kind,
                processing_time_ms=_elapsed_ms(started),
            )
        )


# Instância do processo
_lifecycle_service: Optional[LeadLifecycleService] = None


def get_lead_lifecycle_service() -> LeadLifecycleService:
    """Serviço do processo com auditoria, configuração e cifra padrão."""
    global _lifecycle_service
    if _lifecycle_service is None:
        _lifecycle_service = LeadLifecycleService(audit=get_audit_trail())
    return _lifecycle_service
