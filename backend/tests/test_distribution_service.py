"""
Testes da distribuição de leads entre equipes e membros.
"""

import pytest
from sqlalchemy import update

from src.domain.entities import Team, User
from src.domain.exceptions import AssignmentUnavailable
from src.infrastructure.services.distribution_service import (
    METHOD_CHANNEL_ROUTING,
    METHOD_DEFAULT_OWNER,
    METHOD_LEAST_LOADED,
    assign,
    get_assignable_user,
    member_workloads,
    route_channel,
    team_workloads,
)
from tests.utils import add_lead, create_user


# ===== TESTE 1: ROTEAMENTO FIXO =====

@pytest.mark.parametrize("platform,team", [
    ("youtube", Team.DENIS),
    ("spotify", Team.DENIS),
    ("meta", Team.MARINE),
    ("tiktok", Team.MARINE),
    ("google", None),
    ("multiple", None),
])
def test_route_channel(platform, team):
    assert route_channel(platform) == team


@pytest.mark.asyncio
async def test_youtube_goes_to_denis_regardless_of_load(db_session, team, settings):
    """Cenário B: canal com rota fixa ignora a carga das equipes."""
    for _ in range(5):
        await add_lead(db_session, team["denis_a"])
        await add_lead(db_session, team["denis_b"])
    await db_session.commit()

    assignment = await assign(db_session, "youtube", settings)

    assert assignment.team == Team.DENIS
    assert assignment.method == METHOD_CHANNEL_ROUTING
    assert assignment.owner_id in (team["denis_a"].id, team["denis_b"].id)


@pytest.mark.asyncio
async def test_meta_goes_to_marine(db_session, team, settings):
    assignment = await assign(db_session, "meta", settings)

    assert assignment.team == Team.MARINE
    assert assignment.owner_id == team["marine_a"].id  # empate -> menor id
    assert not assignment.fallback_used


# ===== TESTE 2: EQUIPE MENOS CARREGADA =====

@pytest.mark.asyncio
async def test_unrouted_channel_goes_to_least_loaded_team(db_session, team, settings):
    await add_lead(db_session, team["denis_a"])
    await add_lead(db_session, team["denis_b"])
    await add_lead(db_session, team["marine_a"], platform="meta")
    await db_session.commit()

    assignment = await assign(db_session, "google", settings)

    assert assignment.team == Team.MARINE
    assert assignment.method == METHOD_LEAST_LOADED


@pytest.mark.asyncio
async def test_team_tie_goes_to_denis(db_session, team, settings):
    assignment = await assign(db_session, "google", settings)
    assert assignment.team == Team.DENIS


@pytest.mark.asyncio
async def test_closed_and_archived_leads_do_not_count(db_session, team, settings):
    await add_lead(db_session, team["denis_a"], status="won", deal_value=100)
    await add_lead(db_session, team["denis_a"], status="lost", lost_reason="budget")
    await add_lead(db_session, team["denis_b"], is_archived=True)
    await add_lead(db_session, team["marine_a"], platform="meta")
    await db_session.commit()

    workloads = await team_workloads(db_session)

    assert workloads == {Team.DENIS: 0, Team.MARINE: 1}
    assignment = await assign(db_session, "google", settings)
    assert assignment.team == Team.DENIS


# ===== TESTE 3: MEMBRO MENOS CARREGADO =====

@pytest.mark.asyncio
async def test_least_loaded_member_wins(db_session, team, settings):
    await add_lead(db_session, team["denis_a"])
    await add_lead(db_session, team["denis_a"])
    await add_lead(db_session, team["denis_b"])
    await db_session.commit()

    assignment = await assign(db_session, "youtube", settings)

    assert assignment.owner_id == team["denis_b"].id


@pytest.mark.asyncio
async def test_member_tie_goes_to_lowest_id(db_session, team, settings):
    assignment = await assign(db_session, "spotify", settings)
    assert assignment.owner_id == team["denis_a"].id


@pytest.mark.asyncio
async def test_admins_are_not_in_the_rotation(db_session, team):
    members = await member_workloads(db_session, Team.DENIS)
    member_ids = [user.id for user, _ in members]

    assert team["admin"].id not in member_ids
    assert member_ids == [team["denis_a"].id, team["denis_b"].id]


@pytest.mark.asyncio
async def test_platform_specialists_are_preferred(db_session, team, settings):
    """Quem tem lista de plataformas sem o canal fica de fora."""
    spotify_only = await create_user(
        db_session, "spotify.only@example.com", "denis", assigned_platforms=["spotify"]
    )
    # Carrega os dois que atendem youtube
    await add_lead(db_session, team["denis_a"])
    await add_lead(db_session, team["denis_b"])
    await db_session.commit()

    assignment = await assign(db_session, "youtube", settings)

    assert assignment.owner_id != spotify_only.id
    assert assignment.owner_id == team["denis_a"].id


@pytest.mark.asyncio
async def test_inactive_members_are_skipped(db_session, team, settings):
    await db_session.execute(
        update(User).where(User.id == team["marine_a"].id).values(active=False)
    )
    await db_session.commit()

    assignment = await assign(db_session, "tiktok", settings)

    assert assignment.owner_id == team["marine_manager"].id


# ===== TESTE 4: FALLBACK =====

@pytest.mark.asyncio
async def test_empty_team_uses_default_owner(db_session, settings):
    owner = await create_user(db_session, "owner@example.com", "denis", role="admin")
    await db_session.commit()
    settings.default_owner_id = owner.id

    assignment = await assign(db_session, "meta", settings)

    assert assignment.owner_id == owner.id
    assert assignment.team == Team.DENIS
    assert assignment.method == METHOD_DEFAULT_OWNER
    assert assignment.fallback_used


@pytest.mark.asyncio
async def test_no_member_and_no_default_raises(db_session, settings):
    with pytest.raises(AssignmentUnavailable) as exc:
        await assign(db_session, "youtube", settings)

    assert exc.value.kind == "assignment_unavailable"
    assert exc.value.details["team"] == "denis"


@pytest.mark.asyncio
async def test_inactive_default_owner_is_not_used(db_session, settings):
    owner = await create_user(db_session, "gone@example.com", "marine", active=False)
    await db_session.commit()
    settings.default_owner_id = owner.id

    with pytest.raises(AssignmentUnavailable):
        await assign(db_session, "tiktok", settings)


@pytest.mark.asyncio
async def test_default_owner_outside_the_teams_is_refused(db_session, settings):
    owner = await create_user(db_session, "ops@example.com", "ops")
    await db_session.commit()
    settings.default_owner_id = owner.id

    with pytest.raises(AssignmentUnavailable) as exc:
        await assign(db_session, "youtube", settings)

    assert exc.value.kind == "assignment_unavailable"
    assert exc.value.details == {"user_id": owner.id, "team": "ops"}


@pytest.mark.asyncio
async def test_assignable_user_must_belong_to_a_team(db_session, team):
    outsider = await create_user(db_session, "ops@example.com", "ops")
    await db_session.commit()

    assert (await get_assignable_user(db_session, team["marine_a"].id)).id == team["marine_a"].id
    with pytest.raises(AssignmentUnavailable):
        await get_assignable_user(db_session, outsider.id)
