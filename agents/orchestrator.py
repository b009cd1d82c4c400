"""Orchestrator — one health-score analysis of one client.

Flow:
  1. insert a 'running' AnalysisLog (the soft lock)
  2. another 'running' log for the client inside the lock window → skipped
  3. load the client; missing → failed
  4. client inside the observation period → skipped
  5. collect surveys, payments (Data Fetcher) and messages (cache, then live)
  6. Financial, Survey and Messaging agents run concurrently
  7. weighted total + churn risk
  8. diagnosis via LLM, or the deterministic fallback
  9. persist the health score and its ordered action plan
 10. one alert per distinct mapped flag, unless an unread one exists
 11. finalize the log with the agent snapshot, tokens and cost

The lock is checked before the observation gate, so a duplicate run always
reports "already running". Nothing raises past run_analysis().
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from agents.data_fetcher import fetch_client_payments
from agents.diagnosis import (
    DiagnosisContext,
    DiagnosisError,
    fallback_diagnosis,
    run_diagnosis_agent,
)
from agents.financial import run_financial_agent
from agents.messaging import AGENT_NAME as MESSAGING_AGENT_NAME
from agents.messaging import run_messaging_agent
from agents.survey import run_survey_agent
from agents.weights import calc_churn_risk, calc_weighted_score
from config import AnalysisConfig
from model_config import LlmSettings, get_llm_settings
from schemas import (
    AgencyCredentials,
    AgentResult,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    ChatMessage,
    ClientAccount,
    NormalizedPayment,
)
from tools.evolution_tools import evolution_fetch_group_messages, to_chat_message

logger = logging.getLogger(__name__)

# flag → (severity, message template)
ALERT_DEFINITIONS: Dict[str, Tuple[str, str]] = {
    "chargeback": ("high", "⚠️ {name}: chargeback found in recent charges"),
    "consecutive_overdue": ("high", "⚠️ {name}: 2 or more consecutive overdue payments"),
    "long_overdue": ("high", "⚠️ {name}: payment overdue for more than 30 days"),
    "cancellation_risk": ("high", "⚠️ {name}: cancellation language detected on WhatsApp"),
    "nps_consecutive_low": ("high", "⚠️ {name}: low NPS (≤6) in 2 consecutive answers"),
    "nps_detractor": ("medium", "{name}: last NPS answer is a detractor (≤6)"),
    "form_silence": ("medium", "{name}: detractor with no recent survey answer"),
    "silence": ("medium", "{name}: few WhatsApp messages, possible disengagement"),
    "no_form_response": ("low", "{name}: no survey answer in the last 90 days"),
}

ALREADY_RUNNING = "Analysis already running for this client"


def contract_months(contract_start, today) -> int:
    if contract_start is None:
        return 0
    delta = relativedelta(today, contract_start)
    return max(0, delta.years * 12 + delta.months)


def _error_result(agent_name: str, exc: BaseException) -> AgentResult:
    return AgentResult(
        agent_name=agent_name,
        score=None,
        flags=[],
        details={"error": str(exc)},
        status="error",
        error_message=str(exc),
    )


def _union_flags(results: List[AgentResult]) -> List[str]:
    merged: List[str] = []
    for result in results:
        merged.extend(result.flags)
    return list(dict.fromkeys(merged))


async def _finish(store, log_id: str, status: str, **fields: Any) -> None:
    """Best-effort log update; a failure here must not mask the run's outcome."""
    try:
        await store.update_log(log_id, status, **fields)
    except Exception:
        logger.warning("Could not mark analysis log %s as %s", log_id, status, exc_info=True)


async def _collect_payments(
    client: ClientAccount,
    credentials: AgencyCredentials,
    config: AnalysisConfig,
    payment_fetcher: Callable,
    today,
) -> List[NormalizedPayment]:
    if not client.integrations:
        return []
    try:
        by_provider = await asyncio.to_thread(
            payment_fetcher,
            client.integrations,
            credentials,
            today=today,
            window_days=config.payment_window_days,
            timeout=config.http_timeout,
        )
    except Exception:
        logger.warning("Payment collection failed for client=%s", client.id, exc_info=True)
        return []
    payments: List[NormalizedPayment] = []
    for provider_payments in by_provider.values():
        payments.extend(provider_payments)
    return payments


async def _collect_messages(
    store,
    client: ClientAccount,
    credentials: AgencyCredentials,
    config: AnalysisConfig,
    messaging_fetcher: Callable,
    now: datetime,
) -> List[ChatMessage]:
    """Cached messages first; the live provider only when the cache is empty."""
    group_id = client.messaging_group_id
    if not group_id:
        return []
    since_unix = int((now - timedelta(days=config.message_window_days)).timestamp())

    try:
        cached = await store.list_cached_messages(group_id, since_unix, config.message_max_count)
    except Exception:
        logger.warning("Message cache read failed for group=%s", group_id, exc_info=True)
        cached = []
    if cached:
        return cached

    try:
        fetched = await asyncio.to_thread(
            messaging_fetcher,
            group_id,
            instance=credentials.messaging_instance,
            days=config.message_window_days,
            max_messages=config.message_max_count,
            timeout=config.http_timeout,
        )
    except Exception:
        logger.warning("Live message fetch failed for group=%s", group_id, exc_info=True)
        return []
    if fetched.get("error"):
        logger.warning("Live message fetch degraded for group=%s: %s", group_id, fetched["error"])

    messages = []
    for raw in fetched.get("messages", []):
        message = to_chat_message(raw)
        if message is not None and message.timestamp_unix >= since_unix:
            messages.append(message)
    messages.sort(key=lambda m: m.timestamp_unix)
    return messages


async def _generate_alerts(store, client: ClientAccount, flags: List[str]) -> int:
    created = 0
    for flag in dict.fromkeys(flags):
        definition = ALERT_DEFINITIONS.get(flag)
        if definition is None:
            continue
        severity, template = definition
        try:
            if await store.has_unread_alert(client.id, flag):
                continue
            await store.insert_alert(
                client.id,
                client.agency_id,
                flag,
                severity,
                template.format(name=client.display_name),
            )
            created += 1
        except Exception:
            logger.warning("Could not create alert %s for client=%s", flag, client.id, exc_info=True)
    return created


async def run_analysis(
    request: AnalysisRequest,
    *,
    store,
    config: Optional[AnalysisConfig] = None,
    llm: Optional[LlmSettings] = None,
    messaging_fetcher: Optional[Callable] = None,
    payment_fetcher: Optional[Callable] = None,
    now: Optional[datetime] = None,
) -> AnalysisOutcome:
    """Analyze one client. Always returns an AnalysisOutcome, never raises.

    Args:
        request: client, agency and trigger.
        store: persistence handle (db.store.AnalysisStore or a test double).
        config: tunables; defaults to AnalysisConfig.from_env().
        llm: LLM settings; resolved from the environment and the agency's
            own key when omitted.
        messaging_fetcher: live chat fetch, defaults to the Evolution API.
        payment_fetcher: defaults to agents.data_fetcher.fetch_client_payments.
        now: clock override.
    """
    config = config or AnalysisConfig.from_env()
    now = now or datetime.now(timezone.utc)

    try:
        log_id = await store.create_log(request.client_id, request.agency_id, request.triggered_by)
    except Exception as exc:
        logger.exception("Could not open analysis log for client=%s", request.client_id)
        return AnalysisOutcome(success=False, error=f"Could not open analysis log: {exc}")

    try:
        return await _run(
            request,
            log_id,
            store=store,
            config=config,
            llm=llm,
            messaging_fetcher=messaging_fetcher or evolution_fetch_group_messages,
            payment_fetcher=payment_fetcher or fetch_client_payments,
            now=now,
        )
    except Exception as exc:
        logger.exception("Analysis failed for client=%s", request.client_id)
        await _finish(store, log_id, "failed", error_message=str(exc))
        return AnalysisOutcome(success=False, error=str(exc))


async def _run(
    request: AnalysisRequest,
    log_id: str,
    *,
    store,
    config: AnalysisConfig,
    llm: Optional[LlmSettings],
    messaging_fetcher: Callable,
    payment_fetcher: Callable,
    now: datetime,
) -> AnalysisOutcome:
    client_id, agency_id = request.client_id, request.agency_id
    today = now.date()

    # Lock check
    since = now - timedelta(minutes=config.lock_window_minutes)
    if await store.find_running_log(client_id, since, log_id):
        logger.info("Skipping client=%s: %s", client_id, ALREADY_RUNNING)
        await _finish(store, log_id, "skipped", error_message=ALREADY_RUNNING)
        return AnalysisOutcome(success=False, skipped=True, skip_reason=ALREADY_RUNNING)

    client = await store.get_client(client_id, agency_id)
    if client is None:
        await _finish(store, log_id, "failed", error_message="Client not found")
        return AnalysisOutcome(success=False, error="Client not found")

    # Observation gate
    if client.contract_start is not None:
        days_since_start = (today - client.contract_start).days
        if days_since_start < config.observation_days:
            reason = (
                f"Client in observation period ({days_since_start} days, "
                f"minimum {config.observation_days})"
            )
            await _finish(store, log_id, "skipped", error_message=reason)
            return AnalysisOutcome(success=False, skipped=True, skip_reason=reason)

    credentials = await store.get_agency_credentials(agency_id)
    if llm is None:
        llm = get_llm_settings(agency_api_key=credentials.llm_api_key)

    # Data collection
    submissions, payments, messages, team_identifiers = await asyncio.gather(
        store.list_submissions(client_id, now - timedelta(days=config.survey_window_days)),
        _collect_payments(client, credentials, config, payment_fetcher, today),
        _collect_messages(store, client, credentials, config, messaging_fetcher, now),
        store.get_team_identifiers(agency_id),
    )
    logger.info(
        "Collected client=%s payments=%d surveys=%d messages=%d",
        client_id, len(payments), len(submissions), len(messages),
    )

    # Agent execution
    async def score_financial() -> AgentResult:
        return run_financial_agent(payments, today=today)

    async def score_surveys():
        return run_survey_agent(submissions, reference_date=today)

    async def score_messaging() -> AgentResult:
        try:
            return await run_messaging_agent(
                client.messaging_group_id,
                messages,
                team_identifiers=team_identifiers,
                llm=llm,
                days=config.message_window_days,
                timeout=config.llm_timeout,
            )
        except Exception as exc:
            logger.warning("Messaging agent crashed for client=%s", client_id, exc_info=True)
            return _error_result(MESSAGING_AGENT_NAME, exc)

    financial, surveys, proximity = await asyncio.gather(
        score_financial(), score_surveys(), score_messaging()
    )
    agents = {
        "financial": financial,
        "proximity": proximity,
        "outcome": surveys.outcome,
        "nps": surveys.nps,
    }

    # Score combination
    scores = {name: result.score for name, result in agents.items()}
    score_total = calc_weighted_score(
        financial=scores["financial"],
        proximity=scores["proximity"],
        outcome=scores["outcome"],
        nps=scores["nps"],
    )
    churn_risk = calc_churn_risk(score_total)
    flags = _union_flags(list(agents.values()))

    # Diagnosis
    tokens_used = int(proximity.details.get("tokens_estimate", 0) or 0)
    action_plan: List[str] = []
    if llm is None:
        diagnosis = fallback_diagnosis(score_total, churn_risk)
    else:
        context = DiagnosisContext(
            client=client,
            score_total=score_total,
            agents=agents,
            contract_months=contract_months(client.contract_start, today),
            scores=scores,
        )
        try:
            output = await run_diagnosis_agent(context, llm, timeout=config.llm_timeout)
            diagnosis = output.diagnosis
            action_plan = output.action_plan
            tokens_used += output.tokens_used
        except DiagnosisError as exc:
            logger.warning("Diagnosis failed for client=%s, using fallback: %s", client_id, exc)
            diagnosis = fallback_diagnosis(score_total, churn_risk)
        except Exception:
            logger.warning("Diagnosis crashed for client=%s, using fallback", client_id, exc_info=True)
            diagnosis = fallback_diagnosis(score_total, churn_risk)

    cost_brl = config.estimate_cost_brl(tokens_used)
    result = AnalysisResult(
        client_id=client_id,
        agency_id=agency_id,
        score_financial=scores["financial"],
        score_proximity=scores["proximity"],
        score_outcome=scores["outcome"],
        score_nps=scores["nps"],
        score_total=score_total,
        churn_risk=churn_risk,
        flags=flags,
        agents_log=agents,
        diagnosis=diagnosis,
        action_plan=action_plan,
        tokens_used=tokens_used,
        estimated_cost_brl=cost_brl,
    )

    # Persistence: score row and its action items commit together
    health_score_id = await store.insert_health_score(result, request.triggered_by)

    alerts_created = await _generate_alerts(store, client, flags)

    await _finish(
        store,
        log_id,
        "completed",
        agents_log={name: r.model_dump(mode="json") for name, r in agents.items()},
        health_score_id=health_score_id,
        tokens_used=tokens_used,
        cost_brl=cost_brl,
    )
    logger.info(
        "Analysis done client=%s score=%d risk=%s alerts=%d tokens=%d",
        client_id, score_total, churn_risk, alerts_created, tokens_used,
    )
    return AnalysisOutcome(success=True, analysis_id=health_score_id, result=result)
