"""
SCHEMAS DE VALIDAÇÃO
=====================

Estrutura dos dados que entram e saem do núcleo.
Pydantic valida automaticamente os dados.
"""

import re
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.domain.entities.enums import (
    Currency,
    FollowUpType,
    LeadPriority,
    LeadQuality,
    LeadSource,
    LeadStatus,
    LostReason,
    NoteType,
    Platform,
    Team,
    UserRole,
)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ============================================
# IDENTIDADE / CONTEXTO
# ============================================

class Actor(BaseModel):
    """Usuário já autenticado que executa a operação (confiável)."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    role: UserRole = UserRole.AGENT
    team: Optional[Team] = None
    capabilities: List[str] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(
            id=user.id,
            email=user.email,
            name=user.full_name,
            role=user.role,
            team=user.team,
            capabilities=list(user.capabilities or []),
        )


class RequestContext(BaseModel):
    """Origem da requisição (vai para a auditoria)."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_url: Optional[str] = None
    request_method: Optional[str] = None
    session_id: Optional[str] = None


# ============================================
# LEAD - Captura
# ============================================

class SocialMedia(BaseModel):
    youtube: Optional[str] = None
    spotify: Optional[str] = None
    instagram: Optional[str] = None
    tiktok: Optional[str] = None
    facebook: Optional[str] = None


class SourceDetails(BaseModel):
    url: Optional[str] = None
    campaign: Optional[str] = None
    medium: Optional[str] = None
    utm_source: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_term: Optional[str] = None
    utm_content: Optional[str] = None


class LeadCapturePayload(BaseModel):
    """Lead recebido de formulário, webhook ou integração."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    source: LeadSource
    source_details: Optional[SourceDetails] = None
    platform: Platform

    artist_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    country: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=255)
    social_media: Optional[SocialMedia] = None

    genre: Optional[str] = None
    label: Optional[str] = None
    monthly_listeners: Optional[int] = Field(None, ge=0)
    total_streams: Optional[int] = Field(None, ge=0)

    budget: Optional[float] = Field(None, ge=0)
    budget_currency: Currency = Currency.EUR
    response_time: Optional[int] = Field(None, ge=0, description="Minutos até a primeira resposta")

    priority: LeadPriority = LeadPriority.MEDIUM
    quality: LeadQuality = LeadQuality.COLD
    tags: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        value = value.lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Email inválido")
        return value


# ============================================
# LEAD - Atualização parcial
# ============================================

class LeadUpdatePayload(BaseModel):
    """
    Campos que o usuário pode alterar. lead_score, responsável e equipe
    NÃO entram aqui (score é calculado; responsável muda por reatribuição).
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    status: Optional[LeadStatus] = None
    priority: Optional[LeadPriority] = None
    quality: Optional[LeadQuality] = None

    artist_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    country: Optional[str] = Field(None, max_length=50)
    city: Optional[str] = Field(None, max_length=100)
    website: Optional[str] = Field(None, max_length=255)
    social_media: Optional[SocialMedia] = None

    genre: Optional[str] = None
    label: Optional[str] = None
    monthly_listeners: Optional[int] = Field(None, ge=0)
    total_streams: Optional[int] = Field(None, ge=0)

    budget: Optional[float] = Field(None, ge=0)
    budget_currency: Optional[Currency] = None
    response_time: Optional[int] = Field(None, ge=0)

    deal_value: Optional[float] = Field(None, ge=0)
    commission: Optional[float] = Field(None, ge=0)
    commission_rate: Optional[float] = Field(None, ge=0, le=100)

    lost_reason: Optional[LostReason] = None
    lost_reason_details: Optional[str] = Field(None, max_length=500)

    tags: Optional[List[str]] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.lower()
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Email inválido")
        return value


# ============================================
# NOTAS E FOLLOW-UPS
# ============================================

class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)
    type: NoteType = NoteType.NOTE
    is_private: bool = False


class FollowUpCreate(BaseModel):
    scheduled_for: datetime
    type: FollowUpType
    description: Optional[str] = Field(None, max_length=500)


# ============================================
# LISTAGEM
# ============================================

class LeadFilters(BaseModel):
    status: Optional[LeadStatus] = None
    platform: Optional[Platform] = None
    source: Optional[LeadSource] = None
    team: Optional[Team] = None
    assigned_to: Optional[int] = None
    min_score: Optional[int] = Field(None, ge=0, le=100)
    overdue_only: bool = False
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=100)


# ============================================
# RESPOSTAS
# ============================================

class NoteView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: int
    content: str
    type: str
    is_private: bool
    is_system: bool
    created_at: datetime


class FollowUpView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    scheduled_by: int
    scheduled_for: datetime
    type: str
    description: Optional[str] = None
    completed: bool
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None


class LeadView(BaseModel):
    """Lead completo na resposta (PII já descriptografada)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    source: str
    platform: str
    assigned_to: int
    assigned_team: str
    status: str
    priority: str
    quality: str

    artist_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    website: Optional[str] = None
    social_media: Optional[dict] = None
    genre: Optional[str] = None
    label: Optional[str] = None
    monthly_listeners: Optional[int] = None

    budget: Optional[float] = None
    budget_currency: str = Currency.EUR.value
    deal_value: Optional[float] = None
    commission: Optional[float] = None
    commission_rate: Optional[float] = None

    first_contact_date: Optional[datetime] = None
    last_contact_date: Optional[datetime] = None
    last_activity_date: Optional[datetime] = None
    won_date: Optional[datetime] = None
    lost_date: Optional[datetime] = None
    lost_reason: Optional[str] = None
    lost_reason_details: Optional[str] = None
    next_follow_up: Optional[datetime] = None
    next_follow_up_type: Optional[str] = None
    follow_up_count: int = 0

    lead_score: int = 0
    response_time: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    is_archived: bool = False
    version: int = 1

    notes: List[NoteView] = Field(default_factory=list)
    follow_ups: List[FollowUpView] = Field(default_factory=list)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LeadPage(BaseModel):
    items: List[LeadView]
    total: int
    page: int
    page_size: int
