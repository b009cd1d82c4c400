"""Financial Agent — scores payment behaviour over the payment window.

No LLM involved; pure rules over normalized payments from every provider.

SCORING:
  Base 100
  - Any chargeback-equivalent payment:   -40 (flat, flag 'chargeback')
  - Each overdue payment by days late:
        1-7 days   -10
        8-30 days  -20
        31+ days   -35 (flag 'long_overdue')
    overdue penalties are summed, capped at 50
  - Two or more consecutive overdue payments by due date:
                                         -15 (flag 'consecutive_overdue')
  Final score clamped to [0, 100]. The three penalties can stack well below
  zero before the clamp.

No payments at all → score None, flag 'no_payment_data', status skipped.
"""
import logging
import time
from collections import Counter
from datetime import date, timedelta
from typing import Iterable, List, Optional

from schemas import AgentResult, NormalizedPayment, PaymentStatus

logger = logging.getLogger(__name__)

AGENT_NAME = "financial"

CHARGEBACK_PENALTY = 40
OVERDUE_PENALTY_CAP = 50
CONSECUTIVE_OVERDUE_PENALTY = 15
RECENT_ISSUE_DAYS = 7


def overdue_penalty(days_late: int) -> int:
    # Status wins over date: an 'overdue' payment not yet past due still costs the 1-7 day penalty
    if days_late <= 7:
        return 10
    if days_late <= 30:
        return 20
    return 35


def max_consecutive_overdue(payments: Iterable[NormalizedPayment]) -> int:
    """Longest overdue streak by due date. Paid resets; pending is neutral."""
    streak = 0
    longest = 0
    for payment in sorted(payments, key=lambda p: p.due_date):
        if payment.status == PaymentStatus.OVERDUE:
            streak += 1
            longest = max(longest, streak)
        elif payment.status == PaymentStatus.PAID:
            streak = 0
    return longest


def run_financial_agent(
    payments: List[NormalizedPayment],
    today: Optional[date] = None,
) -> AgentResult:
    started = time.monotonic()
    today = today or date.today()

    if not payments:
        logger.info("No payment data for financial pillar")
        return AgentResult(
            agent_name=AGENT_NAME,
            score=None,
            flags=["no_payment_data"],
            details={"reason": "No financial integration data for this client"},
            status="skipped",
            duration_ms=int((time.monotonic() - started) * 1000),
        )

    score = 100
    flags: List[str] = []
    details: dict = {}

    chargebacks = [p for p in payments if p.status == PaymentStatus.CHARGEBACK]
    if chargebacks:
        score -= CHARGEBACK_PENALTY
        flags.append("chargeback")
        details["chargebacks"] = len(chargebacks)

    overdues = [p for p in payments if p.status == PaymentStatus.OVERDUE]
    total_overdue_penalty = 0
    overdue_details = []
    for payment in overdues:
        days_late = (today - payment.due_date).days
        total_overdue_penalty += overdue_penalty(days_late)
        if days_late > 30 and "long_overdue" not in flags:
            flags.append("long_overdue")
        overdue_details.append(
            {"id": payment.id, "days_late": days_late, "value": payment.net_value}
        )
    score -= min(total_overdue_penalty, OVERDUE_PENALTY_CAP)
    if overdue_details:
        details["overdues"] = overdue_details

    longest_streak = max_consecutive_overdue(payments)
    if longest_streak >= 2:
        score -= CONSECUTIVE_OVERDUE_PENALTY
        flags.append("consecutive_overdue")
        details["max_consecutive_overdues"] = longest_streak

    score = max(0, min(100, score))

    # Weekly cadence: surface problems that showed up in the last 7 days
    recent_cutoff = today - timedelta(days=RECENT_ISSUE_DAYS)
    recent_overdues = [p for p in overdues if p.due_date >= recent_cutoff]
    recent_chargebacks = [p for p in chargebacks if p.due_date >= recent_cutoff]
    if recent_overdues:
        details["recent_issue"] = "overdue_this_week"
        details["recent_overdue_count"] = len(recent_overdues)
    if recent_chargebacks:
        details["recent_issue"] = "chargeback_this_week"

    received = [p for p in payments if p.status == PaymentStatus.PAID]
    pending = [p for p in payments if p.status == PaymentStatus.PENDING]
    sources = Counter(p.source_provider for p in payments)

    details.update({
        "total_payments": len(payments),
        "received": len(received),
        "pending": len(pending),
        "overdue": len(overdues),
        "total_received": round(sum(p.net_value for p in received), 2),
        "total_pending": round(sum(p.net_value for p in pending), 2),
        "total_overdue": round(sum(p.net_value for p in overdues), 2),
        "sources": {"asaas": sources.get("asaas", 0), "dom": sources.get("dom", 0)},
    })

    return AgentResult(
        agent_name=AGENT_NAME,
        score=score,
        flags=flags,
        details=details,
        status="success",
        duration_ms=int((time.monotonic() - started) * 1000),
    )
