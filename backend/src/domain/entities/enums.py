"""Enums - valores fixos que se repetem no sistema."""

from enum import Enum


class LeadStatus(str, Enum):
    """Status do lead no funil."""
    NEW = "new"                        # Acabou de chegar
    CONTACTED = "contacted"            # Primeiro contato feito
    QUALIFIED = "qualified"            # Qualificado
    PROPOSAL_SENT = "proposal_sent"    # Proposta enviada
    NEGOTIATION = "negotiation"        # Em negociação
    WON = "won"                        # Virou cliente
    LOST = "lost"                      # Perdido/desistiu
    ON_HOLD = "on_hold"                # Pausado


# Status que encerram o funil
TERMINAL_STATUSES = frozenset({LeadStatus.WON, LeadStatus.LOST})


class LeadSource(str, Enum):
    """Origem do lead."""
    SIMULATOR = "simulator"
    CONTACT_FORM = "contact_form"
    CALENDLY = "calendly"
    MANUAL = "manual"
    REFERRAL = "referral"
    SOCIAL_MEDIA = "social_media"


class Platform(str, Enum):
    """Canal/plataforma de marketing do lead."""
    YOUTUBE = "youtube"
    SPOTIFY = "spotify"
    META = "meta"
    TIKTOK = "tiktok"
    GOOGLE = "google"
    MULTIPLE = "multiple"


class Team(str, Enum):
    """Equipes de atendimento."""
    DENIS = "denis"
    MARINE = "marine"


class LeadPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class LeadQuality(str, Enum):
    """Nível de qualificação do lead."""
    COLD = "cold"
    WARM = "warm"
    HOT = "hot"


class LostReason(str, Enum):
    """Motivos de perda aceitos."""
    BUDGET = "budget"
    TIMING = "timing"
    COMPETITION = "competition"
    NOT_INTERESTED = "not_interested"
    BAD_FIT = "bad_fit"
    NO_RESPONSE = "no_response"
    OTHER = "other"


class Currency(str, Enum):
    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"
    CAD = "CAD"


class NoteType(str, Enum):
    """Tipos de anotação."""
    NOTE = "note"
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    TASK = "task"


class FollowUpType(str, Enum):
    """Tipos de follow-up agendado."""
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    TASK = "task"


class UserRole(str, Enum):
    """Nível de acesso do usuário."""
    ADMIN = "admin"        # Acesso total
    MANAGER = "manager"    # Gestor de uma equipe
    AGENT = "agent"        # Vê só os próprios leads
