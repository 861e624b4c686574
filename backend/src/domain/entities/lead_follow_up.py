"""
MODELO: FOLLOW-UP DE LEAD
==========================

Próximas ações agendadas para um lead (ligação, email, reunião...).
"""

from datetime import datetime
from typing import Optional, TYPE_CHECKING
from sqlalchemy import String, ForeignKey, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utc_now

if TYPE_CHECKING:
    from .lead import Lead


class LeadFollowUp(Base):
    """Follow-up agendado."""

    __tablename__ = "lead_follow_ups"

    id: Mapped[int] = mapped_column(primary_key=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"), index=True, nullable=False
    )
    scheduled_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # ==========================================
    # CONCLUSÃO
    # ==========================================
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    lead: Mapped["Lead"] = relationship(back_populates="follow_ups")

    def __repr__(self) -> str:
        return f"<LeadFollowUp(id={self.id}, lead_id={self.lead_id}, completed={self.completed})>"
