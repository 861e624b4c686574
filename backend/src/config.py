"""Configurações da aplicação - carrega variáveis do .env"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Tamanho mínimo da chave para AES-256
MIN_ENCRYPTION_KEY_LENGTH = 32


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",  # carrega local
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===========================================
    # CORE
    # ===========================================
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///./lead_engine.db"
    debug: bool = False

    # ===========================================
    # CRIPTOGRAFIA (PII)
    # ===========================================
    # Obrigatória: sem chave o processo não sobe
    encryption_key: str = Field(..., repr=False)

    # ===========================================
    # DISTRIBUIÇÃO DE LEADS
    # ===========================================
    default_owner_id: Optional[int] = None

    # ===========================================
    # PIPELINE
    # ===========================================
    lead_strict_transitions: bool = True

    # ===========================================
    # AUDITORIA
    # ===========================================
    audit_retention_days: int = 365
    audit_hard_expiry_days: int = 730
    audit_write_retries: int = 3
    suspicious_window_minutes: int = 60
    suspicious_failure_threshold: int = 3
    lock_failure_threshold: int = 5

    # ===========================================
    # LOGGING
    # ===========================================
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, value: str) -> str:
        if not value or len(value) < MIN_ENCRYPTION_KEY_LENGTH:
            raise ValueError(
                f"ENCRYPTION_KEY deve ter pelo menos {MIN_ENCRYPTION_KEY_LENGTH} caracteres"
            )
        return value

    @field_validator("audit_hard_expiry_days")
    @classmethod
    def validate_hard_expiry(cls, value: int, info) -> int:
        retention = info.data.get("audit_retention_days", 365)
        if value < retention:
            raise ValueError("audit_hard_expiry_days não pode ser menor que audit_retention_days")
        return value

    # ===========================================
    # PROPRIEDADES
    # ===========================================
    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    return Settings()
