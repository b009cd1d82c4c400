"""Survey Agent — Outcome and NPS pillars from satisfaction survey answers.

The survey is sent monthly; analysis runs weekly over a 90-day window.

Outcome (weight 25%) and NPS (weight 10%) share the same windowing:
  - no answer in 90 days   → score None, flag 'no_form_response', skipped
  - otherwise              → round(avg rating over 90 days × 10)
  - no answer in 30 days   → -10 (floor 0), penalty_no_recent_response

NPS-only flags, evaluated newest answer first:
  - 'nps_detractor'        last NPS ≤ 6
  - 'nps_consecutive_low'  last two NPS both ≤ 6
  - 'form_silence'         detractor and no answer in 30 days
"""
import time
from datetime import date
from typing import List, NamedTuple, Optional

from agents.weights import round_half_up
from schemas import AgentResult, SurveySubmission

HISTORY_WINDOW_DAYS = 90
RECENT_WINDOW_DAYS = 30
DETRACTOR_MAX = 6
NO_RECENT_RESPONSE_PENALTY = 10


class SurveyResults(NamedTuple):
    outcome: AgentResult
    nps: AgentResult


def _days_since(submission: SurveySubmission, reference: date) -> int:
    return (reference - submission.submitted_at.date()).days


def _window_score(average: float, has_recent: bool) -> int:
    score = round_half_up(average * 10)
    if not has_recent:
        score = max(0, score - NO_RECENT_RESPONSE_PENALTY)
    return score


def run_survey_agent(
    submissions: List[SurveySubmission],
    reference_date: Optional[date] = None,
) -> SurveyResults:
    started = time.monotonic()
    reference = reference_date or date.today()

    newest_first = sorted(submissions, key=lambda s: s.submitted_at, reverse=True)
    last_90 = [s for s in newest_first if _days_since(s, reference) <= HISTORY_WINDOW_DAYS]
    last_30 = [s for s in newest_first if _days_since(s, reference) <= RECENT_WINDOW_DAYS]
    has_recent = bool(last_30)

    if not last_90:
        details = {"reason": f"No survey answer in the last {HISTORY_WINDOW_DAYS} days"}
        duration_ms = int((time.monotonic() - started) * 1000)
        return SurveyResults(
            outcome=AgentResult(
                agent_name="outcome",
                score=None,
                flags=["no_form_response"],
                details=details,
                status="skipped",
                duration_ms=duration_ms,
            ),
            nps=AgentResult(
                agent_name="nps",
                score=None,
                flags=["no_form_response"],
                details=dict(details),
                status="skipped",
                duration_ms=duration_ms,
            ),
        )

    last_response = newest_first[0].submitted_at.isoformat()

    avg_outcome = sum(s.outcome_score for s in last_90) / len(last_90)
    outcome_details = {
        "avg_outcome": avg_outcome,
        "responses": len(last_90),
        "last_response": last_response,
    }
    if not has_recent:
        outcome_details["penalty_no_recent_response"] = True

    avg_nps = sum(s.nps_score for s in last_90) / len(last_90)
    last_nps = newest_first[0].nps_score
    nps_details = {
        "avg_nps": avg_nps,
        "last_nps": last_nps,
        "responses": len(last_90),
        "last_response": last_response,
    }
    if not has_recent:
        nps_details["penalty_no_recent_response"] = True

    nps_flags: List[str] = []
    if last_nps <= DETRACTOR_MAX:
        nps_flags.append("nps_detractor")
    last_two = newest_first[:2]
    if len(last_two) == 2 and all(s.nps_score <= DETRACTOR_MAX for s in last_two):
        nps_flags.append("nps_consecutive_low")
    if "nps_detractor" in nps_flags and not has_recent:
        nps_flags.append("form_silence")

    duration_ms = int((time.monotonic() - started) * 1000)
    return SurveyResults(
        outcome=AgentResult(
            agent_name="outcome",
            score=_window_score(avg_outcome, has_recent),
            flags=[],
            details=outcome_details,
            status="success",
            duration_ms=duration_ms,
        ),
        nps=AgentResult(
            agent_name="nps",
            score=_window_score(avg_nps, has_recent),
            flags=nps_flags,
            details=nps_details,
            status="success",
            duration_ms=duration_ms,
        ),
    )
