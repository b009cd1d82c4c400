"""Dom Pagamentos API tools.

Auth: `Authorization: Bearer {token}` from the agency's Dom credentials.
The list endpoint is not filterable by customer, so callers filter the
returned transactions by the customer's CPF/CNPJ digits.
"""
import logging
import re
from typing import Any, Dict, List

import requests

from schemas import DomCredentials

logger = logging.getLogger(__name__)

DOM_BASE_PROD = "https://apiv3.dompagamentos.com.br/checkout/production"
DOM_BASE_SANDBOX = "https://hml-apiv3.dompagamentos.com.br/checkout/sandbox"
PER_PAGE = 100
MAX_PAGES = 20


def _base_url(credentials: DomCredentials) -> str:
    return DOM_BASE_SANDBOX if credentials.environment == "sandbox" else DOM_BASE_PROD


def document_digits(value: str) -> str:
    """Strip CPF/CNPJ punctuation: '12.345.678/0001-90' → '12345678000190'."""
    return re.sub(r"\D", "", value or "")


def transaction_document(tx: Dict[str, Any]) -> str:
    """Customer document of a transaction, wherever the API version puts it."""
    customer = tx.get("customer") or {}
    return document_digits(tx.get("customer_document") or customer.get("document") or "")


def dom_list_transactions(
    credentials: DomCredentials,
    start_date: str,
    end_date: str,
    timeout: float = 15,
) -> Dict[str, Any]:
    """List all transactions of a period, following pagination.

    Args:
        credentials: Agency Dom credentials (token + environment).
        start_date: YYYY-MM-DD.
        end_date: YYYY-MM-DD.
        timeout: Seconds per HTTP request.

    Returns:
        Dict with 'transactions' list of raw Dom transaction objects.
    """
    transactions: List[Dict[str, Any]] = []
    try:
        page = 1
        while page <= MAX_PAGES:
            resp = requests.get(
                f"{_base_url(credentials)}/transactions",
                headers={
                    "Authorization": f"Bearer {credentials.token}",
                    "Content-Type": "application/json",
                },
                params={
                    "start_date": start_date,
                    "end_date": end_date,
                    "page": page,
                    "per_page": PER_PAGE,
                },
                timeout=timeout,
            )
            resp.raise_for_status()
            body = resp.json()
            transactions.extend(body.get("data", []))
            if page >= int(body.get("last_page") or 1):
                break
            page += 1
        return {"transactions": transactions}
    except Exception as exc:
        return {"transactions": transactions, "error": str(exc)}


def dom_fetch_customer_transactions(
    credentials: DomCredentials,
    document: str,
    start_date: str,
    end_date: str,
    timeout: float = 15,
) -> Dict[str, Any]:
    """Transactions of one customer, matched on normalized CPF/CNPJ digits."""
    doc = document_digits(document)
    if not doc:
        return {"document": "", "transactions": [], "error": "empty customer document"}
    result = dom_list_transactions(credentials, start_date, end_date, timeout=timeout)
    matched = [tx for tx in result["transactions"] if transaction_document(tx) == doc]
    out: Dict[str, Any] = {"document": doc, "transactions": matched}
    if "error" in result:
        out["error"] = result["error"]
    return out
