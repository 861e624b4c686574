import os

import pytest
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from tests.utils import (
    TEST_ENCRYPTION_KEY,
    actor_for,
    create_user,
    make_engine,
    make_session_factory,
)

# Settings exige a chave; definida antes de qualquer get_settings()
os.environ.setdefault("ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)

from src.config import Settings  # noqa: E402
from src.domain.entities.base import Base  # noqa: E402
from src.application.services.lead_lifecycle_service import LeadLifecycleService  # noqa: E402
from src.infrastructure.services.audit_service import AuditTrail  # noqa: E402
from src.infrastructure.services.encryption_service import FieldCipher  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """
    Configuração isolada do .env local.
    """
    return Settings(
        _env_file=None,
        encryption_key=TEST_ENCRYPTION_KEY,
        database_url="sqlite+aiosqlite://",
    )


@pytest.fixture
async def engine(tmp_path):
    """
    Banco SQLite novo por teste. As tabelas são criadas antes e a
    engine descartada depois.
    """
    test_engine = make_engine(tmp_path / "lead_engine_test.db")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine  # Aqui é onde os testes rodam

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    Fixture que fornece uma sessão de banco de dados limpa para cada teste.
    """
    async with session_factory() as session:
        yield session


@pytest.fixture
def cipher() -> FieldCipher:
    return FieldCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture
def audit_trail(session_factory, settings) -> AuditTrail:
    return AuditTrail(session_factory, settings)


@pytest.fixture
def service(audit_trail, settings, cipher) -> LeadLifecycleService:
    return LeadLifecycleService(audit=audit_trail, settings=settings, cipher=cipher)


@pytest.fixture
async def team(session_factory) -> dict:
    """
    Equipe padrão:
    - admin (denis)
    - denis_a (youtube/spotify), denis_b
    - marine_a, marine_manager
    """
    async with session_factory() as session:
        users = {
            "admin": await create_user(session, "admin@example.com", "denis", role="admin"),
            "denis_a": await create_user(
                session, "denis.a@example.com", "denis", assigned_platforms=["youtube", "spotify"]
            ),
            "denis_b": await create_user(session, "denis.b@example.com", "denis"),
            "marine_a": await create_user(session, "marine.a@example.com", "marine"),
            "marine_manager": await create_user(
                session, "marine.boss@example.com", "marine", role="manager"
            ),
        }
        await session.commit()
    return users


@pytest.fixture
def actors(team) -> dict:
    return {name: actor_for(user) for name, user in team.items()}
