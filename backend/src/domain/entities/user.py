"""
MODELO: USUÁRIO
================

Membro de uma equipe. Recebe leads pela distribuição automática.
A autenticação fica fora do núcleo; aqui só interessa equipe,
papel, permissões e carga de trabalho.
"""

from datetime import datetime
from typing import Optional, List
from sqlalchemy import String, Boolean, Integer, Float, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, utc_now
from .enums import UserRole


class User(Base, TimestampMixin):
    """Usuário do CRM (admin, gestor ou agente)."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # ==========================================
    # DADOS BÁSICOS
    # ==========================================
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)

    # ==========================================
    # EQUIPE E PERMISSÕES
    # ==========================================
    role: Mapped[str] = mapped_column(String(20), default=UserRole.AGENT.value)
    team: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Plataformas atendidas (ex: ["youtube", "spotify"]); vazio = todas
    assigned_platforms: Mapped[list] = mapped_column(JSON, default=list)

    # Permissões extras no formato "recurso:acao" (ex: ["leads:delete"])
    capabilities: Mapped[list] = mapped_column(JSON, default=list)

    # ==========================================
    # SEGURANÇA
    # ==========================================
    login_attempts: Mapped[int] = mapped_column(Integer, default=0)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # ==========================================
    # MÉTRICAS (preenchidas automaticamente)
    # ==========================================
    leads_created: Mapped[int] = mapped_column(Integer, default=0)
    leads_converted: Mapped[int] = mapped_column(Integer, default=0)
    campaigns_managed: Mapped[int] = mapped_column(Integer, default=0)
    total_revenue: Mapped[float] = mapped_column(Float, default=0.0)

    # ==========================================
    # MÉTODOS ÚTEIS
    # ==========================================
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def conversion_rate(self) -> float:
        """Taxa de conversão em porcentagem."""
        if not self.leads_created:
            return 0.0
        return round((self.leads_converted / self.leads_created) * 100, 2)

    @property
    def is_locked(self) -> bool:
        return bool(self.lock_until and self.lock_until > utc_now())

    def handles_platform(self, platform: str) -> bool:
        """Sem lista definida o usuário atende qualquer plataforma."""
        if not self.assigned_platforms:
            return True
        return platform in self.assigned_platforms

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, team={self.team})>"
