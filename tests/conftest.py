"""Shared fixtures: a clean LLM environment and an in-memory analysis store."""
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from schemas import AgencyCredentials, ChatMessage, ClientAccount, SurveySubmission

LLM_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GOOGLE_CLOUD_PROJECT",
    "LLM_SUMMARY_MODEL",
    "LLM_ANALYSIS_MODEL",
    "LANGFUSE_PUBLIC_KEY",
)


@pytest.fixture(autouse=True)
def no_llm_env(monkeypatch):
    """Tests never pick up a real provider key from the developer's .env."""
    for name in LLM_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeStore:
    """In-memory stand-in for db.store.AnalysisStore."""

    def __init__(
        self,
        clients: Optional[Dict[str, ClientAccount]] = None,
        credentials: Optional[AgencyCredentials] = None,
        submissions: Optional[List[SurveySubmission]] = None,
        cached_messages: Optional[List[ChatMessage]] = None,
        team: Optional[Set[str]] = None,
    ):
        self.clients = clients or {}
        self.credentials = credentials or AgencyCredentials()
        self.submissions = submissions or []
        self.cached_messages = cached_messages or []
        self.team = team or set()
        self.logs: Dict[str, dict] = {}
        self.health_scores: Dict[str, dict] = {}
        self.action_items: List[dict] = []
        self.alerts: List[dict] = []
        self.calls: List[str] = []
        self.agencies_by_weekday: Dict[int, List[str]] = {}
        self.clients_by_agency: Dict[str, List[str]] = {}
        self.messages_to_purge = 0
        self.fail_action_items = False

    async def create_log(self, client_id, agency_id, triggered_by):
        self.calls.append("create_log")
        log_id = str(uuid.uuid4())
        self.logs[log_id] = {
            "client_id": client_id,
            "agency_id": agency_id,
            "status": "running",
            "triggered_by": triggered_by,
            "started_at": datetime.now(timezone.utc),
        }
        return log_id

    async def find_running_log(self, client_id, since, exclude_id):
        self.calls.append("find_running_log")
        for log_id, log in self.logs.items():
            if (
                log_id != exclude_id
                and log["client_id"] == client_id
                and log["status"] == "running"
                and log["started_at"] >= since
            ):
                return log_id
        return None

    async def update_log(self, log_id, status, **fields):
        self.calls.append(f"update_log:{status}")
        self.logs[log_id].update(status=status, **fields)

    async def get_client(self, client_id, agency_id):
        self.calls.append("get_client")
        client = self.clients.get(client_id)
        if client is None or client.agency_id != agency_id:
            return None
        return client

    async def get_agency_credentials(self, agency_id):
        return self.credentials

    async def list_submissions(self, client_id, since):
        return [s for s in self.submissions if s.submitted_at >= since]

    async def list_cached_messages(self, group_id, since_unix, limit):
        return [m for m in self.cached_messages if m.timestamp_unix >= since_unix][-limit:]

    async def get_team_identifiers(self, agency_id):
        return set(self.team)

    async def insert_health_score(self, result, triggered_by):
        """Score row and action items land together or not at all."""
        health_score_id = str(uuid.uuid4())
        items = [
            {"health_score_id": health_score_id, "position": position, "title": title}
            for position, title in enumerate(result.action_plan, start=1)
        ]
        if items and self.fail_action_items:
            raise RuntimeError("action item insert failed")
        self.health_scores[health_score_id] = {"result": result, "triggered_by": triggered_by}
        self.action_items.extend(items)
        return health_score_id

    async def has_unread_alert(self, client_id, alert_type):
        return any(
            a["client_id"] == client_id and a["type"] == alert_type and not a["is_read"]
            for a in self.alerts
        )

    async def insert_alert(self, client_id, agency_id, alert_type, severity, message):
        self.alerts.append({
            "client_id": client_id,
            "agency_id": agency_id,
            "type": alert_type,
            "severity": severity,
            "message": message,
            "is_read": False,
        })

    async def list_agencies_for_weekday(self, weekday):
        return list(self.agencies_by_weekday.get(weekday, []))

    async def list_active_client_ids(self, agency_id):
        return list(self.clients_by_agency.get(agency_id, []))

    async def delete_messages_before(self, cutoff_unix, batch_size):
        deleted = min(batch_size, self.messages_to_purge)
        self.messages_to_purge -= deleted
        self.calls.append(f"delete:{deleted}")
        return deleted


@pytest.fixture
def fake_store():
    return FakeStore()
