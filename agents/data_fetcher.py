"""Data Fetcher — payment records of one client, normalized across providers.

Each provider is fetched for the payment window (by due date) and filtered
to the client's provider-specific customer reference:
  - Asaas: opaque customer id
  - Dom Pagamentos: CPF/CNPJ digits

A missing agency credential or a failed fetch degrades that provider to an
empty list. This module never raises to its caller.
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from schemas import (
    AgencyCredentials,
    ClientIntegration,
    NormalizedPayment,
    PaymentStatus,
)
from tools.asaas_tools import asaas_fetch_customer_payments
from tools.dom_tools import dom_fetch_customer_transactions, transaction_document

logger = logging.getLogger(__name__)

ASAAS_STATUS_MAP = {
    "RECEIVED": PaymentStatus.PAID,
    "CONFIRMED": PaymentStatus.PAID,
    "RECEIVED_IN_CASH": PaymentStatus.PAID,
    "DUNNING_RECEIVED": PaymentStatus.PAID,
    "OVERDUE": PaymentStatus.OVERDUE,
    "DUNNING_REQUESTED": PaymentStatus.OVERDUE,
    "REFUNDED": PaymentStatus.CHARGEBACK,
    "REFUND_REQUESTED": PaymentStatus.CHARGEBACK,
    "CHARGEBACK_REQUESTED": PaymentStatus.CHARGEBACK,
    "CHARGEBACK_DISPUTE": PaymentStatus.CHARGEBACK,
    "AWAITING_CHARGEBACK_REVERSAL": PaymentStatus.CHARGEBACK,
}

DOM_STATUS_MAP = {
    "APPROVED": PaymentStatus.PAID,
    "PAID": PaymentStatus.PAID,
    "REVISION_PAID": PaymentStatus.PAID,
    "OVERDUE": PaymentStatus.OVERDUE,
    "CHARGEBACK": PaymentStatus.CHARGEBACK,
    "DISPUTE": PaymentStatus.CHARGEBACK,
    "REFUND": PaymentStatus.CHARGEBACK,
}


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    text = str(value)
    # Dom sometimes sends dd/mm/yyyy
    return date_parser.parse(text, dayfirst="/" in text).date()


def _net_or_gross(net: Any, gross: float) -> float:
    try:
        net_value = float(net)
    except (TypeError, ValueError):
        return gross
    return net_value if net_value > 0 else gross


def normalize_asaas_payment(raw: Dict[str, Any]) -> NormalizedPayment:
    gross = float(raw.get("value") or 0)
    return NormalizedPayment(
        id=str(raw["id"]),
        status=ASAAS_STATUS_MAP.get(str(raw.get("status", "")).upper(), PaymentStatus.PENDING),
        due_date=_parse_date(raw["dueDate"]),
        payment_date=_parse_date(raw.get("paymentDate")),
        gross_value=gross,
        net_value=_net_or_gross(raw.get("netValue"), gross),
        source_provider="asaas",
    )


def normalize_dom_transaction(raw: Dict[str, Any], fallback_due_date: date) -> NormalizedPayment:
    """Dom amounts are already in BRL. The list endpoint often has no due date,
    so creation date stands in for it."""
    status = DOM_STATUS_MAP.get(str(raw.get("status", "")).upper(), PaymentStatus.PENDING)
    gross = float(raw.get("amount") or 0)
    due = _parse_date(raw.get("due_date")) or _parse_date(raw.get("created_at")) or fallback_due_date
    paid_at = None
    if status == PaymentStatus.PAID:
        paid_at = _parse_date(raw.get("paid_at")) or _parse_date(raw.get("updated_at"))
    tx_id = raw.get("id") or f"dom-{transaction_document(raw)}-{due.isoformat()}-{gross:.2f}"
    return NormalizedPayment(
        id=str(tx_id),
        status=status,
        due_date=due,
        payment_date=paid_at,
        gross_value=gross,
        net_value=_net_or_gross(raw.get("liquid_amount", raw.get("net_amount")), gross),
        source_provider="dom",
    )


def _normalize_all(records, normalize, provider: str, *args) -> List[NormalizedPayment]:
    payments = []
    for raw in records:
        try:
            payments.append(normalize(raw, *args))
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            logger.warning("Skipping malformed %s record %r: %s", provider, raw.get("id"), exc)
    return payments


def fetch_client_payments(
    integrations: List[ClientIntegration],
    credentials: AgencyCredentials,
    today: Optional[date] = None,
    window_days: int = 60,
    timeout: float = 15,
) -> Dict[str, List[NormalizedPayment]]:
    """Return {'asaas': [...], 'dom': [...]} for one client. Never raises."""
    today = today or date.today()
    start = today - timedelta(days=window_days)
    start_date, end_date = start.isoformat(), today.isoformat()
    result: Dict[str, List[NormalizedPayment]] = {"asaas": [], "dom": []}

    asaas_refs = [i.customer_ref for i in integrations if i.type == "asaas" and i.customer_ref]
    dom_refs = [i.customer_ref for i in integrations if i.type == "dom_pagamentos" and i.customer_ref]

    if asaas_refs and not credentials.asaas_api_key:
        logger.warning("Client has Asaas integration but agency has no Asaas API key")
    elif asaas_refs:
        seen = set()
        for customer_id in asaas_refs:
            try:
                fetched = asaas_fetch_customer_payments(
                    credentials.asaas_api_key, customer_id, start_date, end_date, timeout=timeout
                )
                for payment in _normalize_all(fetched["payments"], normalize_asaas_payment, "asaas"):
                    if payment.id not in seen:
                        seen.add(payment.id)
                        result["asaas"].append(payment)
            except Exception as e:
                logger.warning("Asaas fetch failed for customer=%s: %s", customer_id, e, exc_info=True)

    if dom_refs and not credentials.dom:
        logger.warning("Client has Dom integration but agency has no Dom credentials")
    elif dom_refs:
        for document in dom_refs:
            try:
                fetched = dom_fetch_customer_transactions(
                    credentials.dom, document, start_date, end_date, timeout=timeout
                )
                if "error" in fetched:
                    logger.warning("Dom fetch degraded for document: %s", fetched["error"])
                result["dom"].extend(
                    _normalize_all(fetched["transactions"], normalize_dom_transaction, "dom", start)
                )
            except Exception as e:
                logger.warning("Dom fetch failed: %s", e, exc_info=True)

    logger.info(
        "Fetched payments asaas=%d dom=%d (%s to %s)",
        len(result["asaas"]), len(result["dom"]), start_date, end_date,
    )
    return result
