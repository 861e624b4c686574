"""
LeadNote - Anotações dos Leads
===============================

Notas de vendedores/gestores sobre um lead, e as notas automáticas
do sistema a cada mudança de status.
"""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import String, ForeignKey, Text, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utc_now
from .enums import NoteType

if TYPE_CHECKING:
    from .lead import Lead


class LeadNote(Base):
    """Anotação sobre um lead."""

    __tablename__ = "lead_notes"

    id: Mapped[int] = mapped_column(primary_key=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id", ondelete="CASCADE"),
        index=True,
        nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"),
        index=True,
        nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), default=NoteType.NOTE.value)
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    # Relacionamentos
    lead: Mapped["Lead"] = relationship(back_populates="notes")

    def __repr__(self) -> str:
        return f"<LeadNote(id={self.id}, lead_id={self.lead_id}, author_id={self.author_id})>"
