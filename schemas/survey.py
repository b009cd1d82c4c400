"""Satisfaction survey schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SurveySubmission(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    submitted_at: datetime
    nps_score: float = Field(ge=0, le=10)
    outcome_score: float = Field(ge=0, le=10)
    comment: Optional[str] = None
