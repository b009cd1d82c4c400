"""Signal repository — survey submissions and the WhatsApp message cache."""
import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import FormSubmission, WhatsappMessage

logger = logging.getLogger(__name__)


async def get_submissions_since(
    session: AsyncSession, client_id: UUID, since: datetime
) -> list[FormSubmission]:
    """Survey answers submitted at or after `since`, most recent first."""
    result = await session.execute(
        select(FormSubmission)
        .where(FormSubmission.client_id == client_id)
        .where(FormSubmission.submitted_at >= since)
        .order_by(FormSubmission.submitted_at.desc())
    )
    return list(result.scalars().all())


async def get_cached_messages(
    session: AsyncSession,
    group_id: str,
    since_unix: int,
    limit: int = 1000,
) -> list[WhatsappMessage]:
    """Cached group messages newer than `since_unix`, newest `limit` returned oldest first."""
    result = await session.execute(
        select(WhatsappMessage)
        .where(WhatsappMessage.group_id == group_id)
        .where(WhatsappMessage.timestamp_unix >= since_unix)
        .order_by(WhatsappMessage.timestamp_unix.desc())
        .limit(limit)
    )
    rows = list(result.scalars().all())
    rows.reverse()
    return rows


async def delete_messages_before(
    session: AsyncSession, cutoff_unix: int, batch_size: int = 1000
) -> int:
    """Delete one batch of cached messages older than the cutoff. Returns rows deleted."""
    ids_sq = (
        select(WhatsappMessage.id)
        .where(WhatsappMessage.timestamp_unix < cutoff_unix)
        .limit(batch_size)
        .scalar_subquery()
    )
    result = await session.execute(
        delete(WhatsappMessage)
        .where(WhatsappMessage.id.in_(ids_sq))
        .execution_options(synchronize_session=False)
    )
    await session.flush()
    return result.rowcount or 0
