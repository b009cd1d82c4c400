"""Alert repository — unread-alert dedup per (client, type)."""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Alert

logger = logging.getLogger(__name__)


async def get_unread(
    session: AsyncSession, client_id: UUID, alert_type: str
) -> Optional[Alert]:
    result = await session.execute(
        select(Alert)
        .where(Alert.client_id == client_id)
        .where(Alert.type == alert_type)
        .where(Alert.is_read == False)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def create_alert(
    session: AsyncSession,
    client_id: UUID,
    agency_id: UUID,
    alert_type: str,
    severity: str,
    message: str,
) -> Alert:
    alert = Alert(
        client_id=client_id,
        agency_id=agency_id,
        type=alert_type,
        severity=severity,
        message=message,
    )
    session.add(alert)
    await session.flush()
    return alert
