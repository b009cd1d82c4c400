"""Diagnosis Agent — narrative diagnosis and prioritized action plan.

One strong-model call over the four pillar results. Output must be strict
JSON {diagnosis, actionPlan}; anything else raises DiagnosisError and the
caller substitutes fallback_diagnosis(). This agent never decides the run.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from agents.weights import calc_churn_risk
from model_config import LlmSettings
from schemas import AgentResult, ClientAccount, DiagnosisOutput
from tools.llm_tools import LlmError, chat_json

logger = logging.getLogger(__name__)

RISK_LABELS = {"high": "HIGH", "medium": "MEDIUM", "low": "LOW"}

PILLARS = (
    ("financial", "Financial"),
    ("proximity", "Proximity (WhatsApp)"),
    ("outcome", "Outcome"),
    ("nps", "NPS"),
)

SYSTEM_PROMPT = """You are a client-retention consultant for marketing agencies.
Analyze the data you receive and produce an honest, actionable diagnosis.

Return ONLY a valid JSON object:
{
  "diagnosis": "3-4 paragraphs, professional but direct, on the real problems and on what is going well",
  "actionPlan": ["action 1", "action 2", "action 3"]
}

RULES:
1. The diagnosis must be specific to this client, never generic
2. Cite the concrete data (values, days late, response counts)
3. The action plan has 3 to 5 practical actions, most urgent first
4. Each action is one clear sentence starting with a verb
5. Do not use technical terms such as "flags" or "score"; use natural language
6. Write in Brazilian Portuguese"""


class DiagnosisError(Exception):
    """The diagnosis call failed or returned unusable content."""


@dataclass
class DiagnosisContext:
    client: ClientAccount
    score_total: int
    agents: Dict[str, AgentResult]
    contract_months: int = 0
    scores: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def churn_risk(self) -> str:
        return calc_churn_risk(self.score_total)

    @property
    def flags(self) -> List[str]:
        merged: List[str] = []
        for result in self.agents.values():
            merged.extend(result.flags)
        return list(dict.fromkeys(merged))


def fallback_diagnosis(score_total: int, churn_risk: str) -> str:
    """Deterministic text used when no LLM is configured or the call fails."""
    return (
        f"[Automatic diagnosis without AI] Health Score: {score_total}/100 "
        f"(churn risk: {RISK_LABELS.get(churn_risk, churn_risk.upper())}). "
        "Configure an LLM provider to get a detailed diagnosis and action plan."
    )


def _brl(value: Any) -> str:
    try:
        return f"R$ {float(value):,.2f}"
    except (TypeError, ValueError):
        return "not informed"


def _detail(result: Optional[AgentResult], key: str, default: Any = "no data") -> Any:
    if result is None:
        return default
    value = result.details.get(key)
    return default if value is None else value


def build_prompt(context: DiagnosisContext) -> str:
    client = context.client
    financial = context.agents.get("financial")
    proximity = context.agents.get("proximity")
    nps = context.agents.get("nps")

    pillars = []
    for key, label in PILLARS:
        score = context.scores.get(key)
        pillars.append(f"- {label}: {score}/100" if score is not None else f"- {label}: no data")

    flags = context.flags
    summary = _detail(proximity, "summary", None)
    if summary:
        communication = (
            f"- Total messages: {_detail(proximity, 'total_messages', 0)}\n"
            f"- Sentiment: {_detail(proximity, 'sentiment', 'neutral')}\n"
            f"- Engagement: {_detail(proximity, 'engagement_level', 'medium')}\n"
            f"- AI summary: {summary}"
        )
    elif proximity is not None and proximity.status == "success":
        communication = (
            f"- Client messages: {_detail(proximity, 'client_messages', 0)}\n"
            f"- Cancellation terms found: {', '.join(_detail(proximity, 'cancel_keywords', [])) or 'none'}"
        )
    else:
        communication = "- WhatsApp not connected or unavailable"

    return f"""=== CLIENT ===
Name: {client.display_name}
Agency: {client.agency_name}
Segment: {client.segment or 'not informed'}
Contracted service: {client.contract_type or 'not informed'}
Time as client: {context.contract_months} months
Contract value: {_brl(client.contract_value) if client.contract_value else 'not informed'}

=== HEALTH SCORE ===
Total: {context.score_total}/100
Churn risk: {RISK_LABELS[context.churn_risk]}

Pillars:
{chr(10).join(pillars)}

Critical signals: {', '.join(flags) if flags else 'none'}

=== FINANCIAL DETAILS ===
- Charges in the period: {_detail(financial, 'total_payments', 0)}
- Received: {_detail(financial, 'received', 0)}
- Overdue: {_detail(financial, 'overdue', 0)}
- Chargebacks: {_detail(financial, 'chargebacks', 0)}
- Amount overdue: {_brl(_detail(financial, 'total_overdue', 0))}

=== COMMUNICATION DETAILS (WhatsApp) ===
{communication}

=== NPS / OUTCOME DETAILS ===
- Average NPS (last 90 days): {_detail(nps, 'avg_nps')}
- Last NPS: {_detail(nps, 'last_nps')}
- Responses in the period: {_detail(nps, 'responses', 0)}"""


async def run_diagnosis_agent(
    context: DiagnosisContext,
    llm: LlmSettings,
    timeout: float = 60.0,
) -> DiagnosisOutput:
    """Generate the diagnosis. Raises DiagnosisError on any failure."""
    try:
        raw, tokens = await chat_json(
            llm.analysis_model,
            SYSTEM_PROMPT,
            build_prompt(context),
            api_key=llm.api_key,
            max_tokens=1200,
            temperature=0.4,
            timeout=timeout,
        )
    except LlmError as exc:
        raise DiagnosisError(str(exc)) from exc

    try:
        output = DiagnosisOutput.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Diagnosis output failed validation: %s", exc)
        raise DiagnosisError(f"invalid diagnosis payload: {exc.error_count()} error(s)") from exc

    return output.model_copy(update={"tokens_used": tokens})
