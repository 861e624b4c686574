"""
SERVIÇO DE DISTRIBUIÇÃO DE LEADS
=================================

Decide qual equipe e qual membro recebe cada lead.

Regras:
1. Roteamento fixo por canal: youtube/spotify -> denis, meta/tiktok -> marine
2. Demais canais: equipe com menos leads abertos (empate -> denis)
3. Dentro da equipe: membro ativo (não admin) com menos leads abertos (empate -> menor id)
4. Ninguém disponível: responsável padrão da configuração, senão erro

A leitura de carga é pontual e sem lock; desequilíbrios momentâneos
entre requisições simultâneas são aceitos.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.domain.entities import Lead, LeadStatus, Platform, Team, User, UserRole
from src.domain.exceptions import AssignmentUnavailable

logger = logging.getLogger(__name__)


# ==========================================
# ROTEAMENTO FIXO
# ==========================================

CHANNEL_ROUTING: Dict[str, Team] = {
    Platform.YOUTUBE.value: Team.DENIS,
    Platform.SPOTIFY.value: Team.DENIS,
    Platform.META.value: Team.MARINE,
    Platform.TIKTOK.value: Team.MARINE,
}

# Ordem de desempate entre equipes
TEAM_ORDER = (Team.DENIS, Team.MARINE)

OPEN_STATUSES_EXCLUDED = (LeadStatus.WON.value, LeadStatus.LOST.value)

METHOD_CHANNEL_ROUTING = "channel_routing"
METHOD_LEAST_LOADED = "least_loaded_team"
METHOD_DEFAULT_OWNER = "default_owner"


@dataclass(frozen=True)
class Assignment:
    """Resultado da distribuição."""
    owner_id: int
    team: Team
    method: str
    fallback_used: bool = False

    def to_dict(self) -> dict:
        return {
            "owner_id": self.owner_id,
            "team": self.team.value,
            "method": self.method,
            "fallback_used": self.fallback_used,
        }


def _open_lead_clause():
    """Lead aberto = fora de won/lost e não arquivado."""
    return and_(
        Lead.status.notin_(OPEN_STATUSES_EXCLUDED),
        Lead.is_archived == False,  # noqa: E712
    )


def route_channel(platform: str) -> Optional[Team]:
    """Equipe fixa do canal, ou None se o canal não tem rota."""
    return CHANNEL_ROUTING.get(getattr(platform, "value", platform))


# ==========================================
# CARGA DE TRABALHO
# ==========================================

async def team_workloads(db: AsyncSession) -> Dict[Team, int]:
    """
    Leads abertos por equipe.
    """
    result = await db.execute(
        select(Lead.assigned_team, func.count(Lead.id))
        .where(_open_lead_clause())
        .group_by(Lead.assigned_team)
    )
    counts = {team: 0 for team in TEAM_ORDER}
    for team_value, count in result.all():
        try:
            counts[Team(team_value)] = count
        except ValueError:
            logger.warning("Lead com equipe desconhecida", extra={"team": team_value})
    return counts


async def member_workloads(db: AsyncSession, team: Team) -> List[tuple]:
    """
    Membros ativos da equipe (admins não entram no rodízio) com a
    contagem de leads abertos.
    Retorna [(User, open_leads)] ordenado por (carga, id).
    """
    open_count = func.count(Lead.id)
    result = await db.execute(
        select(User, open_count)
        .outerjoin(Lead, and_(Lead.assigned_to == User.id, _open_lead_clause()))
        .where(
            User.team == team.value,
            User.active == True,  # noqa: E712
            User.role != UserRole.ADMIN.value,
        )
        .group_by(User.id)
        .order_by(open_count, User.id)
    )
    return [(user, count) for user, count in result.all()]


def select_least_busy(members: List[tuple], platform: Optional[str] = None) -> Optional[User]:
    """
    Escolhe o membro com menos leads abertos.

    Com canal informado, prefere quem atende o canal; se ninguém atende,
    considera a equipe inteira.
    """
    if not members:
        return None

    candidates = members
    if platform:
        specialists = [(u, c) for u, c in members if u.handles_platform(platform)]
        if specialists:
            candidates = specialists

    user, _ = min(candidates, key=lambda item: (item[1], item[0].id))
    return user


async def choose_team(db: AsyncSession, platform: str) -> tuple:
    """Retorna (equipe, método)."""
    routed = route_channel(platform)
    if routed is not None:
        return routed, METHOD_CHANNEL_ROUTING

    workloads = await team_workloads(db)
    # min() mantém o primeiro em caso de empate (denis)
    team = min(TEAM_ORDER, key=lambda t: workloads.get(t, 0))
    return team, METHOD_LEAST_LOADED


# ==========================================
# DISTRIBUIÇÃO
# ==========================================

async def assign(
    db: AsyncSession,
    platform: str,
    settings: Optional[Settings] = None,
) -> Assignment:
    """
    Escolhe responsável e equipe para um lead novo.

    Raises:
        AssignmentUnavailable: equipe sem membros ativos e sem responsável padrão
    """
    settings = settings or get_settings()
    platform_value = getattr(platform, "value", platform)

    team, method = await choose_team(db, platform_value)
    members = await member_workloads(db, team)
    owner = select_least_busy(
        members,
        platform=platform_value if method == METHOD_CHANNEL_ROUTING else None,
    )

    if owner is not None:
        logger.info(
            "Lead distribuído",
            extra={"owner_id": owner.id, "team": team.value, "method": method, "platform": platform_value},
        )
        return Assignment(owner_id=owner.id, team=team, method=method)

    # Fallback: responsável padrão
    fallback = await _default_owner(db, settings)
    if fallback is None:
        logger.error(
            "Nenhum responsável disponível para o lead",
            extra={"team": team.value, "platform": platform_value},
        )
        raise AssignmentUnavailable(
            f"Nenhum membro ativo na equipe '{team.value}' e nenhum responsável padrão configurado",
            details={"team": team.value, "platform": platform_value},
        )

    logger.warning(
        "Lead enviado ao responsável padrão",
        extra={"owner_id": fallback.id, "team": fallback.team, "platform": platform_value},
    )
    return Assignment(
        owner_id=fallback.id,
        team=_team_of(fallback),
        method=METHOD_DEFAULT_OWNER,
        fallback_used=True,
    )


async def _default_owner(db: AsyncSession, settings: Settings) -> Optional[User]:
    if not settings.default_owner_id:
        return None
    user = await db.get(User, settings.default_owner_id)
    if user is None or not user.active:
        logger.warning(
            "Responsável padrão inexistente ou inativo",
            extra={"default_owner_id": settings.default_owner_id},
        )
        return None
    _team_of(user)
    return user


async def get_assignable_user(db: AsyncSession, user_id: int) -> User:
    """Valida o destino de uma reatribuição manual."""
    user = await db.get(User, user_id)
    if user is None or not user.active:
        raise AssignmentUnavailable(
            "Usuário de destino inexistente ou inativo",
            details={"user_id": user_id},
        )
    _team_of(user)
    return user


def _team_of(user: User) -> Team:
    """Equipe do usuário; fora das duas equipes ele não pode receber leads."""
    try:
        return Team(user.team)
    except ValueError:
        raise AssignmentUnavailable(
            f"Usuário {user.id} não pertence a uma equipe de atendimento",
            details={"user_id": user.id, "team": user.team},
        ) from None
