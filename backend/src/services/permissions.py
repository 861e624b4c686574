"""
Permission Service (RBAC)

Define o que cada role pode fazer e sobre quais leads.
Permissões são um conjunto FECHADO de pares (recurso, ação);
nada de dicionários montados com strings livres.
"""

import logging
from enum import Enum
from typing import Any, FrozenSet, Iterable

from src.domain.entities.enums import UserRole
from src.domain.exceptions import PermissionDenied

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Pares (recurso, ação) conhecidos pelo sistema."""

    LEADS_CREATE = "leads:create"
    LEADS_READ = "leads:read"
    LEADS_UPDATE = "leads:update"
    LEADS_DELETE = "leads:delete"
    LEADS_REASSIGN = "leads:reassign"

    CAMPAIGNS_CREATE = "campaigns:create"
    CAMPAIGNS_READ = "campaigns:read"
    CAMPAIGNS_UPDATE = "campaigns:update"
    CAMPAIGNS_DELETE = "campaigns:delete"

    ANALYTICS_READ = "analytics:read"
    ANALYTICS_EXPORT = "analytics:export"

    ADMIN_USERS = "admin:users"
    ADMIN_SETTINGS = "admin:settings"
    ADMIN_AUDIT = "admin:audit"

    @property
    def resource(self) -> str:
        return self.value.split(":", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]


_AGENT_DEFAULTS = frozenset({
    Capability.LEADS_CREATE,
    Capability.LEADS_READ,
    Capability.LEADS_UPDATE,
    Capability.CAMPAIGNS_CREATE,
    Capability.CAMPAIGNS_READ,
    Capability.CAMPAIGNS_UPDATE,
    Capability.ANALYTICS_READ,
})


def parse_capabilities(values: Iterable[Any]) -> FrozenSet[Capability]:
    """Converte grants salvos ("leads:delete") para Capability; ignora desconhecidos."""
    parsed = set()
    for value in values or ():
        try:
            parsed.add(Capability(getattr(value, "value", value)))
        except ValueError:
            logger.warning("Permissão desconhecida ignorada", extra={"capability": str(value)})
    return frozenset(parsed)


class PermissionService:
    """
    RBAC - Define o que cada role pode acessar.

    Examples:
        service = PermissionService()
        service.require(actor, Capability.LEADS_UPDATE)
        service.require_lead_access(actor, lead, Capability.LEADS_UPDATE)
    """

    # Permissões por role
    ROLE_CAPABILITIES = {
        UserRole.ADMIN: frozenset(Capability),  # Tudo
        UserRole.MANAGER: _AGENT_DEFAULTS | {
            Capability.LEADS_DELETE,
            Capability.LEADS_REASSIGN,
            Capability.ANALYTICS_EXPORT,
        },
        UserRole.AGENT: _AGENT_DEFAULTS,
    }

    def _role(self, actor) -> UserRole:
        try:
            return UserRole(getattr(actor.role, "value", actor.role))
        except ValueError:
            return UserRole.AGENT

    def capabilities_for(self, actor) -> FrozenSet[Capability]:
        role_caps = self.ROLE_CAPABILITIES.get(self._role(actor), frozenset())
        return role_caps | parse_capabilities(getattr(actor, "capabilities", None) or ())

    def has_capability(self, actor, capability: Capability) -> bool:
        return capability in self.capabilities_for(actor)

    def require(self, actor, capability: Capability) -> None:
        if not self.has_capability(actor, capability):
            raise PermissionDenied(
                "Permissão insuficiente",
                details={"capability": capability.value},
            )

    def can_access_lead(self, actor, lead) -> bool:
        """
        Admin vê tudo, gestor vê a própria equipe, agente só os leads dele.
        """
        role = self._role(actor)
        if role == UserRole.ADMIN:
            return True
        if role == UserRole.MANAGER:
            return lead.assigned_team == getattr(actor.team, "value", actor.team)
        return lead.assigned_to == actor.id

    def require_lead_access(self, actor, lead, capability: Capability) -> None:
        self.require(actor, capability)
        if not self.can_access_lead(actor, lead):
            raise PermissionDenied(
                "Acesso negado a este lead",
                details={"lead_id": lead.id, "capability": capability.value},
            )


permission_service = PermissionService()
