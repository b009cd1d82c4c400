"""Chat messaging schemas and the messaging classifier's LLM output."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str
    sender_display_name: str
    sender_identifier: Optional[str] = None  # e.g. "5511999999999@s.whatsapp.net"
    timestamp_unix: int
    is_from_agency_account: bool = False


class MessagingClassification(BaseModel):
    """Strict JSON returned by the final messaging classification call."""

    score: float = Field(ge=0, le=100)
    sentiment: Literal["positive", "neutral", "negative"]
    engagement_level: Literal["high", "medium", "low"] = Field(alias="engagementLevel")
    flags: List[str] = Field(default_factory=list)
    summary: str

    model_config = ConfigDict(populate_by_name=True)
