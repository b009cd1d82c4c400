"""Messaging Agent — proximity pillar from the client's WhatsApp group.

PIPELINE:
  1. No group linked                → score None, 'no_whatsapp_data', skipped
  2. Keep client-authored messages when team members are known
  3. Fewer than 5 client messages   → score 30, 'silence' (a signal, not a gap)
  4. Keyword scan for cancellation / dissatisfaction terms
  5. No LLM configured              → heuristic score
  6. LLM configured:
       a. bucket all messages by ISO week
       b. one cheap-model paragraph per week (sequential)
       c. one stronger-model call over the paragraphs → strict JSON
       d. keyword 'cancellation_risk' merged into the returned flags
     Any failure in the pipeline degrades this pillar to status 'error'.
"""
import logging
import re
import time
import unicodedata
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError

from agents.weights import round_half_up
from model_config import LlmSettings
from schemas import AgentResult, ChatMessage, MessagingClassification
from tools.llm_tools import LlmError, chat_completion, chat_json

logger = logging.getLogger(__name__)

AGENT_NAME = "proximity"

SILENCE_THRESHOLD = 5
SILENCE_SCORE = 30
WEEK_MESSAGE_CAP = 50
MESSAGE_CHAR_CAP = 200
TOKENS_PER_WEEK_SUMMARY = 300
TOKENS_FINAL_ANALYSIS = 500

# Matched against accent-stripped, lowercased text
CANCEL_KEYWORDS = (
    "cancelar", "cancelamento", "rescindir", "rescisao", "encerrar contrato",
    "nao quero mais", "quero parar", "insatisfeito", "descontente", "decepcionado",
    "pessimo", "horrivel", "terrivel", "abandonar", "mudar de agencia",
    "cancel the contract", "terminate the contract",
)

WEEK_SUMMARY_PROMPT = (
    "You analyze the relationship between a marketing agency and one of its "
    "clients. Read this excerpt of their WhatsApp group and write one concise "
    "paragraph (at most 100 words) covering: engagement level, overall tone, "
    "main themes discussed and any warning sign. {team_note}"
    "Write in the language of the conversation. Reply with the paragraph only."
)

TEAM_NOTE = (
    "Lines tagged (client) were written by the client and matter most; lines "
    "tagged (team) were written by agency staff. "
)

FINAL_ANALYSIS_PROMPT = """You are an expert in agency-client relationship health.

You will receive weekly summaries of a client's WhatsApp group covering the
last {days} days, oldest first. The analysis runs WEEKLY, so the week marked
[MOST RECENT WEEK] must weigh the most in your assessment; earlier weeks give
historical context and trend.

Return ONLY a JSON object:
{{
  "score": number 0-100 for the CURRENT communication health,
  "sentiment": "positive" | "neutral" | "negative" (dominant in the most recent week),
  "engagementLevel": "high" | "medium" | "low",
  "flags": array of worrying flags (e.g. "cancellation_risk", "negative_sentiment", "silence"),
  "summary": 2-3 sentences; the first describes THIS WEEK, the rest the historical trend
}}

SCORE GUIDE (driven by the most recent week):
- 80-100: frequent, positive communication, engaged client
- 60-79: regular communication, neutral to positive tone
- 40-59: sparse communication or neutral tone, no strong negative signs
- 20-39: rare communication or negative tone detected
- 0-19: near-total silence or strong cancellation signals"""


def _plain(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _identifier_key(value: str) -> str:
    local = value.split("@", 1)[0]
    digits = re.sub(r"\D", "", local)
    return digits or local.strip().lower()


def is_team_message(message: ChatMessage, team_keys: Set[str]) -> bool:
    if message.is_from_agency_account:
        return True
    return bool(message.sender_identifier) and _identifier_key(message.sender_identifier) in team_keys


def find_cancel_keywords(messages: Iterable[ChatMessage]) -> List[str]:
    text = " ".join(_plain(m.content) for m in messages)
    return [kw for kw in CANCEL_KEYWORDS if kw in text]


def heuristic_score(client_message_count: int, has_cancel_keywords: bool) -> int:
    """More messages means more engagement, up to 100; keywords cost 30 (floor 20)."""
    base = min(100.0, 50 + client_message_count / 2)
    if has_cancel_keywords:
        return round_half_up(max(20.0, base - 30))
    return round_half_up(base)


def iso_week_label(timestamp_unix: int) -> str:
    year, week, _ = datetime.fromtimestamp(timestamp_unix, tz=timezone.utc).isocalendar()
    return f"{year}-W{week:02d}"


def build_weekly_batches(messages: Iterable[ChatMessage]) -> List[Tuple[str, List[ChatMessage]]]:
    """Messages grouped by ISO week, weeks chronological, messages oldest first."""
    by_week: Dict[str, List[ChatMessage]] = defaultdict(list)
    for message in messages:
        by_week[iso_week_label(message.timestamp_unix)].append(message)
    return [
        (label, sorted(batch, key=lambda m: m.timestamp_unix))
        for label, batch in sorted(by_week.items())
        if batch
    ]


def format_week(batch: List[ChatMessage], team_keys: Optional[Set[str]]) -> str:
    lines = []
    for message in batch[:WEEK_MESSAGE_CAP]:
        sender = message.sender_display_name
        if team_keys:
            sender += " (team)" if is_team_message(message, team_keys) else " (client)"
        lines.append(f"[{sender}]: {message.content[:MESSAGE_CHAR_CAP]}")
    return "\n".join(lines)


def format_summaries(summaries: List[str]) -> str:
    blocks = []
    for i, summary in enumerate(summaries, start=1):
        if i == len(summaries):
            label = f"[MOST RECENT WEEK, higher weight] Week {i}"
        else:
            label = f"Week {i} (history)"
        blocks.append(f"{label}:\n{summary}")
    return "\n\n".join(blocks)


def _result(started: float, **kwargs) -> AgentResult:
    return AgentResult(
        agent_name=AGENT_NAME,
        duration_ms=int((time.monotonic() - started) * 1000),
        **kwargs,
    )


async def run_messaging_agent(
    group_id: Optional[str],
    messages: List[ChatMessage],
    team_identifiers: Optional[Set[str]] = None,
    llm: Optional[LlmSettings] = None,
    days: int = 60,
    timeout: float = 60.0,
) -> AgentResult:
    started = time.monotonic()

    if not group_id:
        return _result(
            started,
            score=None,
            flags=["no_whatsapp_data"],
            details={"reason": "No WhatsApp group linked to this client"},
            status="skipped",
        )

    team_keys = {_identifier_key(t) for t in team_identifiers or () if t}
    if team_keys:
        client_messages = [m for m in messages if not is_team_message(m, team_keys)]
    else:
        client_messages = list(messages)

    base_details = {
        "total_messages": len(messages),
        "client_messages": len(client_messages),
        "period": f"{days} days",
        "team_identified": bool(team_keys),
    }

    if len(client_messages) < SILENCE_THRESHOLD:
        return _result(
            started,
            score=SILENCE_SCORE,
            flags=["silence"],
            details={**base_details, "reason": f"Fewer than {SILENCE_THRESHOLD} client messages in the period"},
            status="success",
        )

    keywords = find_cancel_keywords(client_messages)
    has_cancel_keywords = bool(keywords)

    if llm is None:
        return _result(
            started,
            score=heuristic_score(len(client_messages), has_cancel_keywords),
            flags=["cancellation_risk"] if has_cancel_keywords else [],
            details={**base_details, "cancel_keywords": keywords, "mode": "heuristic"},
            status="success",
        )

    tokens_estimate = 0
    tokens_reported = 0
    try:
        batches = build_weekly_batches(messages)
        system_prompt = WEEK_SUMMARY_PROMPT.format(team_note=TEAM_NOTE if team_keys else "")
        summaries: List[str] = []
        for label, batch in batches:
            reply = await chat_completion(
                llm.summary_model,
                system_prompt,
                f"Week {label}:\n\n{format_week(batch, team_keys)}",
                api_key=llm.api_key,
                max_tokens=200,
                temperature=0.3,
                timeout=timeout,
            )
            summaries.append(reply.text)
            tokens_estimate += TOKENS_PER_WEEK_SUMMARY
            tokens_reported += reply.tokens_used

        if not summaries:
            raise LlmError("no weekly summaries were produced")

        raw, used = await chat_json(
            llm.analysis_model,
            FINAL_ANALYSIS_PROMPT.format(days=days),
            f"Client messages in the last {days} days: {len(client_messages)}\n\n"
            f"Weekly summaries (oldest to most recent):\n\n{format_summaries(summaries)}",
            api_key=llm.api_key,
            max_tokens=500,
            temperature=0.2,
            timeout=timeout,
        )
        tokens_estimate += TOKENS_FINAL_ANALYSIS
        tokens_reported += used
        classification = MessagingClassification.model_validate(raw)
    except (LlmError, ValidationError) as exc:
        logger.warning("Messaging LLM pipeline failed for group=%s: %s", group_id, exc)
        return _result(
            started,
            score=None,
            flags=[],
            details={**base_details, "error": str(exc), "tokens_estimate": tokens_estimate},
            status="error",
            error_message=str(exc),
        )

    flags = [f for f in classification.flags if isinstance(f, str) and f]
    if has_cancel_keywords and "cancellation_risk" not in flags:
        flags.append("cancellation_risk")

    return _result(
        started,
        score=round_half_up(classification.score),
        flags=flags,
        details={
            **base_details,
            "mode": "llm",
            "cancel_keywords": keywords,
            "sentiment": classification.sentiment,
            "engagement_level": classification.engagement_level,
            "summary": classification.summary,
            "weekly_batches": len(batches),
            "tokens_estimate": tokens_estimate,
            "tokens_reported": tokens_reported,
        },
        status="success",
    )
