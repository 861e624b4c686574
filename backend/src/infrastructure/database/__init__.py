"""Acesso ao banco de dados."""
from .connection import (
    dispose_engine,
    get_db,
    get_engine,
    get_session_factory,
    init_db,
    normalize_database_url,
)

__all__ = [
    "dispose_engine",
    "get_db",
    "get_engine",
    "get_session_factory",
    "init_db",
    "normalize_database_url",
]
