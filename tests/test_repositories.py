"""Integration tests for core repository methods."""
import os
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import update

# DATABASE_URL must point at a migrated database (alembic upgrade head).
# Example: export DATABASE_URL="postgresql+asyncpg://health:<password>@<host>:5432/health_score"
if not os.environ.get("DATABASE_URL"):
    pytest.skip("DATABASE_URL not set; repository integration tests skipped", allow_module_level=True)

from db import get_db
from db.models import Agency, Alert, Client, ClientIntegration, FormSubmission, TeamMember, WhatsappMessage
from db.repositories import alerts as alerts_repo
from db.repositories import analysis as analysis_repo
from db.repositories import clients as clients_repo
from db.repositories import signals as signals_repo


async def _seed_client(**client_fields):
    async with get_db() as session:
        agency = Agency(name=f"Agency {uuid.uuid4().hex[:6]}", analysis_day=1)
        session.add(agency)
        await session.flush()
        client = Client(
            agency_id=agency.id,
            name="Test Client",
            contract_start=date(2025, 1, 10),
            **client_fields,
        )
        session.add(client)
        await session.flush()
        return agency.id, client.id


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_client_is_scoped_to_agency():
    """A client is only visible through its own agency."""
    agency_id, client_id = await _seed_client()
    async with get_db() as session:
        session.add(ClientIntegration(client_id=client_id, type="asaas", customer_ref="cus_123"))
    async with get_db() as session:
        client = await clients_repo.get_client(session, client_id, agency_id)
        other = await clients_repo.get_client(session, client_id, uuid.uuid4())
    assert client is not None
    assert [i.customer_ref for i in client.integrations] == ["cus_123"]
    assert other is None


@pytest.mark.asyncio
async def test_running_log_lock():
    """Another fresh 'running' log is found; the caller's own log is not."""
    agency_id, client_id = await _seed_client()
    async with get_db() as session:
        first = await analysis_repo.create_log(session, client_id, agency_id, "manual")
        second = await analysis_repo.create_log(session, client_id, agency_id, "scheduled")
    since = datetime.now(timezone.utc) - timedelta(minutes=5)
    async with get_db() as session:
        found = await analysis_repo.find_other_running_log(session, client_id, since, second.id)
        assert found is not None and found.id == first.id
        await analysis_repo.finish_log(session, first.id, "completed", tokens_used=10, cost_brl=0.01)
    async with get_db() as session:
        found = await analysis_repo.find_other_running_log(session, client_id, since, second.id)
    assert found is None


@pytest.mark.asyncio
async def test_health_score_with_ordered_action_items():
    agency_id, client_id = await _seed_client()
    async with get_db() as session:
        score = await analysis_repo.insert_health_score(session, {
            "client_id": client_id,
            "agency_id": agency_id,
            "score_total": 62,
            "score_financial": 55,
            "churn_risk": "medium",
            "diagnosis": "Diagnóstico de teste",
            "action_plan": ["Ligar", "Negociar"],
            "flags": ["consecutive_overdue"],
            "triggered_by": "manual",
            "tokens_used": 900,
        })
        items = await analysis_repo.insert_action_items(
            session, score.id, client_id, agency_id, ["Ligar", "Negociar"]
        )
    assert [(i.position, i.title) for i in items] == [(1, "Ligar"), (2, "Negociar")]
    assert all(i.status == "pending" for i in items)


@pytest.mark.asyncio
async def test_unread_alert_dedup():
    """get_unread finds an unread alert until it is marked read."""
    agency_id, client_id = await _seed_client()
    async with get_db() as session:
        alert = await alerts_repo.create_alert(
            session, client_id, agency_id, "chargeback", "high", "Test: chargeback"
        )
    async with get_db() as session:
        assert await alerts_repo.get_unread(session, client_id, "chargeback") is not None
        await session.execute(update(Alert).where(Alert.id == alert.id).values(is_read=True))
    async with get_db() as session:
        assert await alerts_repo.get_unread(session, client_id, "chargeback") is None


@pytest.mark.asyncio
async def test_submission_window():
    """Submissions older than `since` are excluded."""
    agency_id, client_id = await _seed_client()
    now = datetime.now(timezone.utc)
    async with get_db() as session:
        session.add_all([
            FormSubmission(client_id=client_id, nps_score=9, outcome_score=8, submitted_at=now - timedelta(days=10)),
            FormSubmission(client_id=client_id, nps_score=3, outcome_score=4, submitted_at=now - timedelta(days=120)),
        ])
    async with get_db() as session:
        rows = await signals_repo.get_submissions_since(session, client_id, now - timedelta(days=90))
    assert [r.nps_score for r in rows] == [9]


@pytest.mark.asyncio
async def test_message_cache_and_purge():
    group_id = f"{uuid.uuid4().hex[:12]}@g.us"
    now_unix = int(datetime.now(timezone.utc).timestamp())
    async with get_db() as session:
        session.add_all([
            WhatsappMessage(group_id=group_id, message_id=f"{group_id}-{i}", content=f"m{i}",
                            timestamp_unix=now_unix - i * 3600)
            for i in range(3)
        ] + [
            WhatsappMessage(group_id=group_id, message_id=f"{group_id}-old", content="old",
                            timestamp_unix=now_unix - 120 * 86400),
        ])
    async with get_db() as session:
        cached = await signals_repo.get_cached_messages(session, group_id, now_unix - 60 * 86400, limit=2)
    assert [m.content for m in cached] == ["m1", "m0"]

    async with get_db() as session:
        deleted = await signals_repo.delete_messages_before(session, now_unix - 90 * 86400, batch_size=1000)
    assert deleted >= 1
    async with get_db() as session:
        remaining = await signals_repo.get_cached_messages(session, group_id, 0)
    assert len(remaining) == 3


@pytest.mark.asyncio
async def test_team_phones_and_weekday_schedule():
    agency_id, _ = await _seed_client()
    async with get_db() as session:
        session.add_all([
            TeamMember(agency_id=agency_id, name="Ana", phone="5511911112222"),
            TeamMember(agency_id=agency_id, name="Sem telefone"),
        ])
    async with get_db() as session:
        phones = await clients_repo.get_team_phones(session, agency_id)
        agencies = await clients_repo.get_agencies_for_weekday(session, 1)
        client_ids = await clients_repo.get_active_client_ids(session, agency_id)
    assert phones == {"5511911112222"}
    assert agency_id in {a.id for a in agencies}
    assert len(client_ids) == 1
