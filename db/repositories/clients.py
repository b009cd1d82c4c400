"""Client and agency repository — accounts, integrations, team, scheduling."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db.models import Agency, AgencyIntegration, Client, TeamMember

logger = logging.getLogger(__name__)


async def get_client(
    session: AsyncSession, client_id: UUID, agency_id: UUID
) -> Optional[Client]:
    """Return the client with its integrations and agency, scoped to the agency."""
    result = await session.execute(
        select(Client)
        .options(selectinload(Client.integrations), selectinload(Client.agency))
        .where(Client.id == client_id)
        .where(Client.agency_id == agency_id)
    )
    return result.scalar_one_or_none()


async def get_agency(session: AsyncSession, agency_id: UUID) -> Optional[Agency]:
    result = await session.execute(select(Agency).where(Agency.id == agency_id))
    return result.scalar_one_or_none()


async def get_active_integrations(
    session: AsyncSession, agency_id: UUID
) -> list[AgencyIntegration]:
    """Active agency integrations (still encrypted)."""
    result = await session.execute(
        select(AgencyIntegration)
        .where(AgencyIntegration.agency_id == agency_id)
        .where(AgencyIntegration.is_active == True)
    )
    return list(result.scalars().all())


async def get_team_phones(session: AsyncSession, agency_id: UUID) -> set[str]:
    """Phones of the agency's registered team members."""
    result = await session.execute(
        select(TeamMember.phone)
        .where(TeamMember.agency_id == agency_id)
        .where(TeamMember.phone.is_not(None))
    )
    return {row[0] for row in result.all() if row[0]}


async def get_agencies_for_weekday(session: AsyncSession, weekday: int) -> list[Agency]:
    """Agencies whose weekly analysis runs on this weekday (0=Sunday)."""
    result = await session.execute(
        select(Agency).where(Agency.analysis_day == weekday).order_by(Agency.created_at)
    )
    return list(result.scalars().all())


async def get_active_client_ids(session: AsyncSession, agency_id: UUID) -> list[UUID]:
    result = await session.execute(
        select(Client.id)
        .where(Client.agency_id == agency_id)
        .where(Client.status == "active")
        .order_by(Client.created_at)
    )
    return [row[0] for row in result.all()]
