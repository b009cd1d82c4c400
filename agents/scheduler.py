"""Scheduled jobs: the weekly analysis run and the message cache purge."""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from agents.orchestrator import run_analysis
from config import AnalysisConfig
from schemas import AnalysisRequest

logger = logging.getLogger(__name__)

PURGE_BATCH_SIZE = 1000


def weekday_sunday_first(day: date) -> int:
    """0=Sunday … 6=Saturday (date.weekday() is Monday-first)."""
    return (day.weekday() + 1) % 7


async def run_scheduled_analyses(
    store,
    *,
    config: Optional[AnalysisConfig] = None,
    today: Optional[date] = None,
    analyze: Callable = run_analysis,
) -> Dict[str, int]:
    """Analyze every active client of the agencies scheduled for today.

    Clients run sequentially to bound LLM and provider load. One client's
    failure never stops the job.

    Returns:
        Counts {'agencies', 'clients', 'success', 'failed', 'skipped'}.
    """
    config = config or AnalysisConfig.from_env()
    today = today or datetime.now(timezone.utc).date()
    weekday = weekday_sunday_first(today)

    agency_ids = await store.list_agencies_for_weekday(weekday)
    counts = {"agencies": len(agency_ids), "clients": 0, "success": 0, "failed": 0, "skipped": 0}
    logger.info("Scheduled run for weekday=%d: %d agencies", weekday, len(agency_ids))

    for agency_id in agency_ids:
        try:
            client_ids = await store.list_active_client_ids(agency_id)
        except Exception:
            logger.warning("Could not list clients of agency=%s", agency_id, exc_info=True)
            continue
        for client_id in client_ids:
            counts["clients"] += 1
            outcome = await analyze(
                AnalysisRequest(client_id=client_id, agency_id=agency_id, triggered_by="scheduled"),
                store=store,
                config=config,
            )
            if outcome.success:
                counts["success"] += 1
            elif outcome.skipped:
                counts["skipped"] += 1
            else:
                counts["failed"] += 1
                logger.warning("Scheduled analysis failed client=%s: %s", client_id, outcome.error)

    logger.info("Scheduled run finished: %s", counts)
    return counts


async def purge_old_messages(
    store,
    *,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
    batch_size: int = PURGE_BATCH_SIZE,
) -> int:
    """Delete cached chat messages older than the retention window, batch by batch.

    Returns:
        Total rows deleted.
    """
    if retention_days is None:
        retention_days = AnalysisConfig.from_env().message_retention_days
    now = now or datetime.now(timezone.utc)
    cutoff_unix = int((now - timedelta(days=retention_days)).timestamp())

    total = 0
    while True:
        deleted = await store.delete_messages_before(cutoff_unix, batch_size)
        total += deleted
        if deleted < batch_size:
            break
    logger.info("Purged %d cached messages older than %d days", total, retention_days)
    return total
