"""Analysis repository — run logs (soft lock), health scores, action items."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ActionItem, AnalysisLog, HealthScore

logger = logging.getLogger(__name__)


async def create_log(
    session: AsyncSession,
    client_id: UUID,
    agency_id: UUID,
    triggered_by: str,
) -> AnalysisLog:
    """Insert a 'running' log row. Its presence is the per-client soft lock."""
    log = AnalysisLog(
        client_id=client_id,
        agency_id=agency_id,
        status="running",
        triggered_by=triggered_by,
        started_at=datetime.now(timezone.utc),
    )
    session.add(log)
    await session.flush()
    return log


async def find_other_running_log(
    session: AsyncSession,
    client_id: UUID,
    since: datetime,
    exclude_id: UUID,
) -> Optional[AnalysisLog]:
    """Another 'running' log for this client started at or after `since`."""
    result = await session.execute(
        select(AnalysisLog)
        .where(AnalysisLog.client_id == client_id)
        .where(AnalysisLog.status == "running")
        .where(AnalysisLog.started_at >= since)
        .where(AnalysisLog.id != exclude_id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def finish_log(
    session: AsyncSession,
    log_id: UUID,
    status: str,
    *,
    error_message: Optional[str] = None,
    agents_log: Optional[dict[str, Any]] = None,
    health_score_id: Optional[UUID] = None,
    tokens_used: Optional[int] = None,
    cost_brl: Optional[float] = None,
) -> None:
    """Set the final status of a log and stamp finished_at."""
    values: dict[str, Any] = {
        "status": status,
        "finished_at": datetime.now(timezone.utc),
    }
    if error_message is not None:
        values["error_message"] = error_message
    if agents_log is not None:
        values["agents_log"] = agents_log
    if health_score_id is not None:
        values["health_score_id"] = health_score_id
    if tokens_used is not None:
        values["tokens_used"] = tokens_used
    if cost_brl is not None:
        values["cost_brl"] = Decimal(str(cost_brl))
    await session.execute(
        update(AnalysisLog).where(AnalysisLog.id == log_id).values(**values)
    )
    await session.flush()


async def insert_health_score(session: AsyncSession, data: dict) -> HealthScore:
    """Append one health score row.

    data dict keys: client_id, agency_id, score_total, score_financial,
    score_proximity, score_outcome, score_nps, churn_risk, diagnosis,
    action_plan, flags, triggered_by, tokens_used, cost_brl
    """
    score = HealthScore(**data)
    session.add(score)
    await session.flush()
    return score


async def insert_action_items(
    session: AsyncSession,
    health_score_id: UUID,
    client_id: UUID,
    agency_id: UUID,
    titles: list[str],
) -> list[ActionItem]:
    """Persist the action plan in order (position 1..n)."""
    items = [
        ActionItem(
            health_score_id=health_score_id,
            client_id=client_id,
            agency_id=agency_id,
            position=position,
            title=title,
        )
        for position, title in enumerate(titles, start=1)
    ]
    session.add_all(items)
    await session.flush()
    return items

