"""AnalysisStore — the persistence handle injected into the orchestrator.

Wraps the repository functions, converting ORM rows into the schemas the
agents consume. Each call runs in its own get_db() session so the 'running'
log is committed (and visible to concurrent runs) before any work starts.
"""
import logging
from datetime import datetime
from typing import Any, AsyncContextManager, Callable, List, Optional, Set
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from db.connection import get_db
from db.encryption import CredentialDecryptError, decrypt_json
from db.repositories import alerts as alerts_repo
from db.repositories import analysis as analysis_repo
from db.repositories import clients as clients_repo
from db.repositories import signals as signals_repo
from schemas import (
    AgencyCredentials,
    AnalysisResult,
    ChatMessage,
    ClientAccount,
    ClientIntegration,
    SurveySubmission,
)

logger = logging.getLogger(__name__)


def _uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _decrypt(encrypted: Optional[str], label: str) -> Optional[dict]:
    if not encrypted:
        return None
    try:
        return decrypt_json(encrypted)
    except (CredentialDecryptError, RuntimeError) as exc:
        logger.warning("Ignoring %s credential: %s", label, exc)
        return None


def _set_credential(creds: dict, field: str, value: Any, label: str) -> None:
    """Validate one field on its own so a malformed value drops only that provider."""
    try:
        creds[field] = getattr(AgencyCredentials(**{field: value}), field)
    except ValidationError as exc:
        logger.warning("Ignoring %s credential: %d invalid field(s)", label, exc.error_count())


class AnalysisStore:
    """SQLAlchemy-backed store. Ids cross this boundary as strings."""

    def __init__(self, session_scope: Callable[[], AsyncContextManager[AsyncSession]] = get_db):
        self._session_scope = session_scope

    # -- analysis log / soft lock -------------------------------------------

    async def create_log(self, client_id: str, agency_id: str, triggered_by: str) -> str:
        async with self._session_scope() as session:
            log = await analysis_repo.create_log(
                session, UUID(client_id), UUID(agency_id), triggered_by
            )
            return str(log.id)

    async def find_running_log(self, client_id: str, since: datetime, exclude_id: str) -> Optional[str]:
        async with self._session_scope() as session:
            log = await analysis_repo.find_other_running_log(
                session, UUID(client_id), since, UUID(exclude_id)
            )
            return str(log.id) if log else None

    async def update_log(self, log_id: str, status: str, **fields: Any) -> None:
        if fields.get("health_score_id"):
            fields["health_score_id"] = UUID(fields["health_score_id"])
        async with self._session_scope() as session:
            await analysis_repo.finish_log(session, UUID(log_id), status, **fields)

    # -- inputs ---------------------------------------------------------------

    async def get_client(self, client_id: str, agency_id: str) -> Optional[ClientAccount]:
        client_uuid, agency_uuid = _uuid(client_id), _uuid(agency_id)
        if client_uuid is None or agency_uuid is None:
            return None
        async with self._session_scope() as session:
            client = await clients_repo.get_client(session, client_uuid, agency_uuid)
            if client is None:
                return None
            value = client.contract_value
            return ClientAccount(
                id=str(client.id),
                agency_id=str(client.agency_id),
                agency_name=client.agency.name if client.agency else "Agency",
                name=client.name,
                short_name=client.short_name,
                segment=client.segment,
                contract_start=client.contract_start,
                contract_type=client.contract_type,
                contract_value=float(value) if value is not None else None,
                messaging_group_id=client.whatsapp_group_id,
                integrations=[
                    ClientIntegration(type=i.type, customer_ref=i.customer_ref)
                    for i in client.integrations
                    if i.is_active
                ],
            )

    async def get_agency_credentials(self, agency_id: str) -> AgencyCredentials:
        """Decrypted agency credentials. A bad ciphertext or malformed value drops that provider only."""
        async with self._session_scope() as session:
            agency = await clients_repo.get_agency(session, UUID(agency_id))
            integrations = await clients_repo.get_active_integrations(session, UUID(agency_id))

        creds: dict = {}
        for integration in integrations:
            data = _decrypt(integration.credentials_enc, integration.type)
            if not data:
                continue
            if integration.type == "asaas" and data.get("api_key"):
                _set_credential(creds, "asaas_api_key", data["api_key"], "asaas")
            elif integration.type == "dom_pagamentos" and data.get("token"):
                dom = {"token": data["token"], "environment": data.get("environment") or "production"}
                _set_credential(creds, "dom", dom, "dom_pagamentos")

        if agency is not None:
            llm = _decrypt(agency.llm_credentials_enc, "llm")
            if llm and llm.get("api_key"):
                _set_credential(creds, "llm_api_key", llm["api_key"], "llm")
            _set_credential(creds, "messaging_instance", agency.whatsapp_instance, "whatsapp")
            _set_credential(creds, "messaging_number", agency.whatsapp_number, "whatsapp")
        return AgencyCredentials(**creds)

    async def list_submissions(self, client_id: str, since: datetime) -> List[SurveySubmission]:
        async with self._session_scope() as session:
            rows = await signals_repo.get_submissions_since(session, UUID(client_id), since)
            return [
                SurveySubmission(
                    id=str(row.id),
                    submitted_at=row.submitted_at,
                    nps_score=row.nps_score,
                    outcome_score=row.outcome_score,
                    comment=row.comment,
                )
                for row in rows
            ]

    async def list_cached_messages(self, group_id: str, since_unix: int, limit: int) -> List[ChatMessage]:
        async with self._session_scope() as session:
            rows = await signals_repo.get_cached_messages(session, group_id, since_unix, limit)
            return [
                ChatMessage(
                    content=row.content,
                    sender_display_name=row.sender_name or row.sender_phone or "Unknown",
                    sender_identifier=row.sender_phone,
                    timestamp_unix=row.timestamp_unix,
                    is_from_agency_account=row.is_from_me,
                )
                for row in rows
            ]

    async def get_team_identifiers(self, agency_id: str) -> Set[str]:
        """Team member phones plus the agency's own WhatsApp number."""
        async with self._session_scope() as session:
            phones = await clients_repo.get_team_phones(session, UUID(agency_id))
            agency = await clients_repo.get_agency(session, UUID(agency_id))
        if agency is not None and agency.whatsapp_number:
            phones.add(agency.whatsapp_number)
        return phones

    # -- outputs --------------------------------------------------------------

    async def insert_health_score(self, result: AnalysisResult, triggered_by: str) -> str:
        """Insert the score row and its ordered action items in one transaction."""
        async with self._session_scope() as session:
            row = await analysis_repo.insert_health_score(session, {
                "client_id": UUID(result.client_id),
                "agency_id": UUID(result.agency_id),
                "score_total": result.score_total,
                "score_financial": result.score_financial,
                "score_proximity": result.score_proximity,
                "score_outcome": result.score_outcome,
                "score_nps": result.score_nps,
                "churn_risk": result.churn_risk,
                "diagnosis": result.diagnosis,
                "action_plan": result.action_plan,
                "flags": result.flags,
                "triggered_by": triggered_by,
                "tokens_used": result.tokens_used,
                "cost_brl": result.estimated_cost_brl,
            })
            if result.action_plan:
                await analysis_repo.insert_action_items(
                    session, row.id, row.client_id, row.agency_id, result.action_plan
                )
            return str(row.id)

    async def has_unread_alert(self, client_id: str, alert_type: str) -> bool:
        async with self._session_scope() as session:
            return await alerts_repo.get_unread(session, UUID(client_id), alert_type) is not None

    async def insert_alert(
        self, client_id: str, agency_id: str, alert_type: str, severity: str, message: str
    ) -> None:
        async with self._session_scope() as session:
            await alerts_repo.create_alert(
                session, UUID(client_id), UUID(agency_id), alert_type, severity, message
            )

    # -- scheduling / maintenance --------------------------------------------

    async def list_agencies_for_weekday(self, weekday: int) -> List[str]:
        async with self._session_scope() as session:
            agencies = await clients_repo.get_agencies_for_weekday(session, weekday)
            return [str(a.id) for a in agencies]

    async def list_active_client_ids(self, agency_id: str) -> List[str]:
        async with self._session_scope() as session:
            ids = await clients_repo.get_active_client_ids(session, UUID(agency_id))
            return [str(i) for i in ids]

    async def delete_messages_before(self, cutoff_unix: int, batch_size: int) -> int:
        """Delete one batch in its own transaction."""
        async with self._session_scope() as session:
            return await signals_repo.delete_messages_before(session, cutoff_unix, batch_size)
