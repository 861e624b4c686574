# backend/src/domain/entities/lead.py

from datetime import datetime
from typing import Optional, List
from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, Text, JSON, Float, Boolean
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utc_now
from .enums import LeadStatus, LeadPriority, LeadQuality, Currency


class Lead(Base):
    __tablename__ = "leads"

    # ===============================
    # IDENTIDADE
    # ===============================
    id: Mapped[int] = mapped_column(primary_key=True)

    # Contador de escrita: toda atualização do registro é condicional a ele
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # ===============================
    # ORIGEM / CANAL
    # ===============================
    source: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    source_details: Mapped[Optional[dict]] = mapped_column(JSON)
    platform: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # ===============================
    # ATRIBUIÇÃO
    # ===============================
    assigned_to: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    assigned_team: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    assignment_method: Mapped[Optional[str]] = mapped_column(String(50))

    # ===============================
    # STATUS / PIPELINE
    # ===============================
    status: Mapped[str] = mapped_column(String(20), default=LeadStatus.NEW.value, nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(10), default=LeadPriority.MEDIUM.value)
    quality: Mapped[str] = mapped_column(String(10), default=LeadQuality.COLD.value)

    # ===============================
    # DADOS DO ARTISTA
    # ===============================
    artist_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # PII: guardados sempre criptografados ("nonceHex:cipherHex")
    email: Mapped[str] = mapped_column(String(1024), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(512))
    country: Mapped[Optional[str]] = mapped_column(String(50))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    website: Mapped[Optional[str]] = mapped_column(String(255))
    social_media: Mapped[Optional[dict]] = mapped_column(JSON)

    genre: Mapped[Optional[str]] = mapped_column(String(100))
    label: Mapped[Optional[str]] = mapped_column(String(100))
    monthly_listeners: Mapped[Optional[int]] = mapped_column(Integer)
    total_streams: Mapped[Optional[int]] = mapped_column(Integer)

    # ===============================
    # COMERCIAL
    # ===============================
    budget: Mapped[Optional[float]] = mapped_column(Float)
    budget_currency: Mapped[str] = mapped_column(String(3), default=Currency.EUR.value)
    deal_value: Mapped[Optional[float]] = mapped_column(Float)
    commission: Mapped[Optional[float]] = mapped_column(Float)
    commission_rate: Mapped[Optional[float]] = mapped_column(Float)

    # ===============================
    # DATAS DO CICLO DE VIDA
    # ===============================
    first_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    last_activity_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    won_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    lost_date: Mapped[Optional[datetime]] = mapped_column(DateTime)

    lost_reason: Mapped[Optional[str]] = mapped_column(String(30))
    lost_reason_details: Mapped[Optional[str]] = mapped_column(Text)

    # ===============================
    # PRÓXIMA AÇÃO
    # ===============================
    next_follow_up: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    next_follow_up_type: Mapped[Optional[str]] = mapped_column(String(20))
    follow_up_count: Mapped[int] = mapped_column(Integer, default=0)

    # ===============================
    # SCORE
    # ===============================
    lead_score: Mapped[int] = mapped_column(Integer, default=0, index=True)
    response_time: Mapped[Optional[int]] = mapped_column(Integer)  # em minutos

    tags: Mapped[list] = mapped_column(JSON, default=list)

    # ===============================
    # ARQUIVAMENTO
    # ===============================
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    archived_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))

    # ===============================
    # TIMESTAMPS
    # ===============================
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now)

    # ===============================
    # RELACIONAMENTOS
    # ===============================
    notes: Mapped[List["LeadNote"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadNote.id",
    )
    follow_ups: Mapped[List["LeadFollowUp"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadFollowUp.id",
    )

    @property
    def is_open(self) -> bool:
        """Lead ainda no funil (não fechado nem arquivado)."""
        return not self.is_archived and self.status not in (
            LeadStatus.WON.value, LeadStatus.LOST.value
        )

    @property
    def age_in_days(self) -> int:
        return (utc_now() - self.created_at).days if self.created_at else 0

    @property
    def is_stale(self) -> bool:
        """Mais de 7 dias sem contato."""
        if not self.last_contact_date:
            return False
        return (utc_now() - self.last_contact_date).days > 7

    @property
    def next_follow_up_overdue(self) -> bool:
        return bool(self.next_follow_up and self.next_follow_up < utc_now())

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, status={self.status}, assigned_to={self.assigned_to})>"
