"""Base e mixins para todos os modelos do banco."""

from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Agora em UTC, sem tzinfo (todas as colunas guardam UTC ingênuo)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Classe base para todos os modelos."""
    pass


class TimestampMixin:
    """Adiciona created_at e updated_at automáticos."""
    
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now, onupdate=utc_now, nullable=False
    )
