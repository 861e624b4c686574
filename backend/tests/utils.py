from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.application.schemas import Actor
from src.domain.entities import Lead, User, utc_now
from src.infrastructure.services.audit_service import AuditCategory, AuditFact, ResourceType

# Chave usada em todos os testes (>= 32 caracteres)
TEST_ENCRYPTION_KEY = "test-encryption-key-with-at-least-32-chars"


def make_engine(database_path):
    """Engine SQLite em arquivo (várias conexões enxergam os mesmos dados)."""
    return create_async_engine(f"sqlite+aiosqlite:///{database_path}")


def make_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class BrokenSessionFactory:
    """Fábrica de sessões cujo banco está sempre fora do ar."""

    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self

    async def __aenter__(self):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("database is down"))

    async def __aexit__(self, *exc):
        return False


async def create_user(
    session: AsyncSession,
    email: str,
    team: str,
    role: str = "agent",
    active: bool = True,
    assigned_platforms: Optional[list] = None,
    capabilities: Optional[list] = None,
) -> User:
    first_name = email.split("@")[0].capitalize()
    user = User(
        first_name=first_name,
        last_name="Teste",
        email=email,
        role=role,
        team=team,
        active=active,
        assigned_platforms=assigned_platforms or [],
        capabilities=capabilities or [],
    )
    session.add(user)
    await session.flush()
    return user


async def add_lead(
    session: AsyncSession,
    owner: User,
    status: str = "new",
    platform: str = "youtube",
    is_archived: bool = False,
    **overrides,
) -> Lead:
    """Insere um lead direto no banco (sem passar pelo serviço)."""
    values = dict(
        source="manual",
        platform=platform,
        assigned_to=owner.id,
        assigned_team=owner.team,
        status=status,
        artist_name="Artista Seed",
        email="seed@example.com",
        is_archived=is_archived,
        tags=[],
    )
    values.update(overrides)
    lead = Lead(**values)
    session.add(lead)
    await session.flush()
    return lead


def actor_for(user: User) -> Actor:
    return Actor.from_user(user)


def capture_payload(**overrides) -> dict:
    """Payload típico de formulário de contato."""
    payload = {
        "source": "contact_form",
        "platform": "youtube",
        "artist_name": "Luna Vega",
        "email": "luna@example.com",
        "phone": "+33 6 12 34 56 78",
        "country": "France",
        "budget": 2500,
        "monthly_listeners": 12000,
    }
    payload.update(overrides)
    return payload


def audit_fact(
    action: str = "lead_updated",
    category: AuditCategory = AuditCategory.DATA_MODIFICATION,
    user_id: Optional[int] = 1,
    success: bool = True,
    days_ago: float = 0,
    minutes_ago: float = 0,
    **overrides,
) -> AuditFact:
    """Fato de auditoria com timestamp no passado."""
    values = dict(
        action=action,
        category=category,
        description=f"Teste {action}",
        user_id=user_id,
        user_email="agent@example.com",
        user_name="Agent Teste",
        resource_type=ResourceType.LEAD,
        resource_id=1,
        success=success,
        timestamp=utc_now() - timedelta(days=days_ago, minutes=minutes_ago),
    )
    values.update(overrides)
    return AuditFact(**values)
