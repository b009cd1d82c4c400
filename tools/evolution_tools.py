"""Evolution API (WhatsApp) tools — live group message fetch.

Evolution API v2 is self-hosted. Environment:
  EVOLUTION_API_URL   base URL, e.g. https://evolution.example.com
  EVOLUTION_API_KEY   global API key
  EVOLUTION_INSTANCE  default instance name (agencies may override)
"""
import logging
import os
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from schemas import ChatMessage

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


def group_jid(group_id: str) -> str:
    """Accept '120363xxx' or '120363xxx@g.us' and return the full JID."""
    return group_id if "@g.us" in group_id else f"{group_id}@g.us"


def extract_message_text(raw: Dict[str, Any]) -> Optional[str]:
    """Text of a message for the common message types, None otherwise."""
    message = raw.get("message") or {}
    return (
        message.get("conversation")
        or (message.get("extendedTextMessage") or {}).get("text")
        or (message.get("imageMessage") or {}).get("caption")
        or None
    )


def to_chat_message(raw: Dict[str, Any]) -> Optional[ChatMessage]:
    """Convert a raw Evolution message; None for non-text or malformed messages."""
    text = (extract_message_text(raw) or "").strip()
    if not text:
        return None
    key = raw.get("key") or {}
    try:
        return ChatMessage(
            content=text,
            sender_display_name=raw.get("pushName") or key.get("participant") or "Unknown",
            sender_identifier=key.get("participant"),
            timestamp_unix=int(raw.get("messageTimestamp") or 0),
            is_from_agency_account=bool(key.get("fromMe")),
        )
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning("Skipping malformed Evolution message: %s", exc)
        return None


def _records(body: Any) -> List[Dict[str, Any]]:
    # Response shape varies across Evolution API versions
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        return ((body.get("messages") or {}).get("records")) or []
    return []


def evolution_fetch_group_messages(
    group_id: str,
    instance: Optional[str] = None,
    days: int = 60,
    max_messages: int = 1000,
    timeout: float = 15,
) -> Dict[str, Any]:
    """Fetch a group's messages from the last `days`, newest pages first.

    Stops at the lookback cutoff, at max_messages, or at the last page.
    A failure on a later page keeps what was already collected.

    Returns:
        Dict with 'messages' list of raw Evolution messages.
    """
    base_url = os.environ.get("EVOLUTION_API_URL", "")
    api_key = os.environ.get("EVOLUTION_API_KEY", "")
    instance = instance or os.environ.get("EVOLUTION_INSTANCE", "")
    if not base_url or not api_key or not instance:
        return {"messages": [], "error": "Evolution API not configured"}

    jid = group_jid(group_id)
    cutoff = int(time.time()) - days * 86400
    collected: List[Dict[str, Any]] = []
    page = 1
    while len(collected) < max_messages:
        try:
            resp = requests.get(
                f"{base_url}/chat/findMessages/{instance}"
                f"?where[key.remoteJid]={quote(jid)}&limit={PAGE_SIZE}&page={page}",
                headers={"apikey": api_key, "Content-Type": "application/json"},
                timeout=timeout,
            )
            resp.raise_for_status()
            records = _records(resp.json())
        except Exception as exc:
            if page == 1:
                return {"messages": [], "error": str(exc)}
            logger.warning("Evolution pagination stopped at page %d: %s", page, exc)
            break

        if not records:
            break

        hit_cutoff = False
        for raw in records:
            if int(raw.get("messageTimestamp") or 0) < cutoff:
                hit_cutoff = True
                break
            collected.append(raw)
            if len(collected) >= max_messages:
                break

        if hit_cutoff or len(records) < PAGE_SIZE:
            break
        page += 1

    return {"messages": collected}
