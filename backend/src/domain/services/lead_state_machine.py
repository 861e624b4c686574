"""
MÁQUINA DE ESTADOS DO LEAD
===========================

Regras puras do funil (sem banco):
- quais transições são permitidas
- pré-condições obrigatórias (won exige deal_value, lost exige motivo)
- efeitos no registro (datas, nota automática, contadores do responsável)

Funil:
    new -> contacted -> qualified -> proposal_sent -> negotiation -> won | lost

`on_hold` pode ser alcançado de qualquer status não terminal e volta
para qualquer status não terminal. `won` e `lost` são terminais.

A orquestração (gravação condicional, nota, auditoria) fica em
application/services/lead_lifecycle_service.py.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from src.domain.entities.enums import LeadStatus, LostReason, TERMINAL_STATUSES
from src.domain.exceptions import ValidationError


PIPELINE = (
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.QUALIFIED,
    LeadStatus.PROPOSAL_SENT,
    LeadStatus.NEGOTIATION,
)

# Estágios a partir dos quais o negócio pode ser fechado como ganho
WIN_READY = frozenset({LeadStatus.PROPOSAL_SENT, LeadStatus.NEGOTIATION})


def _build_adjacency() -> Dict[LeadStatus, FrozenSet[LeadStatus]]:
    adjacency: Dict[LeadStatus, FrozenSet[LeadStatus]] = {}

    for index, status in enumerate(PIPELINE):
        targets = set(PIPELINE[index + 1:])          # avançar (pode pular etapas)
        if index > 0:
            targets.add(PIPELINE[index - 1])         # voltar uma etapa
        targets.update({LeadStatus.ON_HOLD, LeadStatus.LOST})
        if status in WIN_READY:
            targets.add(LeadStatus.WON)
        adjacency[status] = frozenset(targets)

    # Pausado volta para qualquer etapa aberta, ou é encerrado como perdido
    adjacency[LeadStatus.ON_HOLD] = frozenset(set(PIPELINE) | {LeadStatus.LOST})

    for status in TERMINAL_STATUSES:
        adjacency[status] = frozenset()

    return adjacency


ADJACENCY = _build_adjacency()


def _as_status(value: Any) -> LeadStatus:
    try:
        return LeadStatus(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            f"Status inválido: {value}",
            details={"field": "status", "value": str(value)},
        ) from None


def allowed_transitions(current: Any, strict: bool = True) -> FrozenSet[LeadStatus]:
    """Status alcançáveis a partir do status atual."""
    status = _as_status(current)
    if strict:
        return ADJACENCY[status]
    if status in TERMINAL_STATUSES:
        return frozenset()
    return frozenset(s for s in LeadStatus if s != status)


def can_transition(current: Any, new: Any, strict: bool = True) -> bool:
    return _as_status(new) in allowed_transitions(current, strict=strict)


@dataclass
class TransitionPlan:
    """Resultado de uma transição validada, pronto para ser gravado."""
    old_status: LeadStatus
    new_status: LeadStatus
    changes: Dict[str, Any] = field(default_factory=dict)
    note: str = ""
    # Valor a somar na receita do responsável (só em won)
    converted_value: Optional[float] = None

    @property
    def is_conversion(self) -> bool:
        return self.new_status == LeadStatus.WON


def plan_transition(
    lead: Any,
    new_status: Any,
    now: datetime,
    deal_value: Optional[float] = None,
    lost_reason: Optional[Any] = None,
    lost_reason_details: Optional[str] = None,
    strict: bool = True,
) -> TransitionPlan:
    """
    Valida a transição contra o estado ATUAL do lead e calcula os efeitos.

    Raises:
        ValidationError: transição não permitida ou pré-condição ausente
    """
    old = _as_status(lead.status)
    new = _as_status(new_status)

    if old == new:
        raise ValidationError(
            f"Lead já está com status '{new.value}'",
            details={"field": "status", "current": old.value},
        )

    if not can_transition(old, new, strict=strict):
        raise ValidationError(
            f"Transição não permitida: '{old.value}' -> '{new.value}'",
            details={
                "field": "status",
                "current": old.value,
                "allowed": sorted(s.value for s in allowed_transitions(old, strict=strict)),
            },
        )

    changes: Dict[str, Any] = {
        "status": new.value,
        "last_activity_date": now,
    }
    plan = TransitionPlan(old_status=old, new_status=new, changes=changes)

    if new == LeadStatus.WON:
        value = deal_value if deal_value is not None else lead.deal_value
        if value is None or value <= 0:
            raise ValidationError(
                "Para marcar como ganho é obrigatório informar um deal_value positivo",
                details={"field": "deal_value"},
            )
        changes["deal_value"] = value
        changes["won_date"] = now
        plan.converted_value = value

    elif new == LeadStatus.LOST:
        reason = _as_lost_reason(lost_reason)
        changes["lost_reason"] = reason.value
        changes["lost_date"] = now
        if lost_reason_details:
            changes["lost_reason_details"] = lost_reason_details

    elif new == LeadStatus.CONTACTED and not lead.first_contact_date:
        changes["first_contact_date"] = now
        changes["last_contact_date"] = now

    plan.note = f'Status changed from "{old.value}" to "{new.value}"'
    return plan


def _as_lost_reason(value: Any) -> LostReason:
    if value is None or value == "":
        raise ValidationError(
            "Para marcar como perdido é obrigatório informar o motivo (lost_reason)",
            details={"field": "lost_reason"},
        )
    try:
        return LostReason(getattr(value, "value", value))
    except ValueError:
        raise ValidationError(
            f"Motivo de perda inválido: {value}",
            details={
                "field": "lost_reason",
                "allowed": [r.value for r in LostReason],
            },
        ) from None
