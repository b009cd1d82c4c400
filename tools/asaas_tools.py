"""Asaas payment API tools.

Calls the Asaas REST API directly (no official Python SDK). Auth is the
agency's API key in the `access_token` header.
"""
import logging
import os
from typing import Any, Dict, List

import requests

logger = logging.getLogger(__name__)

ASAAS_BASE = os.environ.get("ASAAS_API_URL", "https://api.asaas.com/v3")
PAGE_SIZE = 100
MAX_PAGES = 10

# One request per status group; a payment can only appear in one of them but
# results are still de-duplicated by id.
STATUS_GROUPS = (
    "RECEIVED,CONFIRMED,RECEIVED_IN_CASH,DUNNING_RECEIVED",
    "PENDING,AWAITING_RISK_ANALYSIS",
    "OVERDUE,DUNNING_REQUESTED,REFUNDED,REFUND_REQUESTED,"
    "CHARGEBACK_REQUESTED,CHARGEBACK_DISPUTE,AWAITING_CHARGEBACK_REVERSAL",
)


def asaas_list_payments(
    api_key: str,
    customer_id: str,
    start_date: str,
    end_date: str,
    status: str = "",
    timeout: float = 15,
) -> Dict[str, Any]:
    """List one customer's payments by due date, following pagination.

    Args:
        api_key: Agency Asaas API key.
        customer_id: Asaas customer id (e.g. cus_000005219613).
        start_date: First due date, YYYY-MM-DD.
        end_date: Last due date, YYYY-MM-DD.
        status: Comma-separated Asaas statuses to filter on (optional).
        timeout: Seconds per HTTP request.

    Returns:
        Dict with 'payments' list of raw Asaas payment objects.
    """
    payments: List[Dict[str, Any]] = []
    try:
        for page in range(MAX_PAGES):
            params: Dict[str, Any] = {
                "customer": customer_id,
                "dueDate[ge]": start_date,
                "dueDate[le]": end_date,
                "limit": PAGE_SIZE,
                "offset": page * PAGE_SIZE,
            }
            if status:
                params["status"] = status
            resp = requests.get(
                f"{ASAAS_BASE}/payments",
                headers={"access_token": api_key},
                params=params,
                timeout=timeout,
            )
            resp.raise_for_status()
            body = resp.json()
            payments.extend(body.get("data", []))
            if not body.get("hasMore"):
                break
        return {"customer_id": customer_id, "payments": payments}
    except Exception as exc:
        return {"customer_id": customer_id, "payments": payments, "error": str(exc)}


def asaas_fetch_customer_payments(
    api_key: str,
    customer_id: str,
    start_date: str,
    end_date: str,
    timeout: float = 15,
) -> Dict[str, Any]:
    """Fetch every status group for a customer and de-duplicate by payment id.

    A failing status group is logged and skipped; the others still count.

    Returns:
        Dict with 'payments' list and 'errors' list (one entry per failed group).
    """
    seen = set()
    payments: List[Dict[str, Any]] = []
    errors: List[str] = []
    for group in STATUS_GROUPS:
        result = asaas_list_payments(
            api_key, customer_id, start_date, end_date, status=group, timeout=timeout
        )
        if "error" in result:
            logger.warning(
                "Asaas fetch failed for customer=%s status=%s: %s",
                customer_id, group, result["error"],
            )
            errors.append(result["error"])
        for payment in result["payments"]:
            payment_id = payment.get("id")
            if payment_id in seen:
                continue
            seen.add(payment_id)
            payments.append(payment)
    return {"customer_id": customer_id, "payments": payments, "errors": errors}
