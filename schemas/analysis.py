"""Agent results, analysis outcome and diagnosis schemas."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


AgentStatus = Literal["success", "skipped", "error"]
ChurnRisk = Literal["low", "medium", "high"]
TriggeredBy = Literal["scheduled", "manual"]


class AgentResult(BaseModel):
    """Result of one pillar agent. Built once per run and never mutated."""

    model_config = ConfigDict(frozen=True)

    agent_name: str
    score: Optional[int] = Field(default=None, ge=0, le=100)
    flags: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    status: AgentStatus
    error_message: Optional[str] = None
    duration_ms: int = 0

    @field_validator("flags")
    @classmethod
    def _dedupe_flags(cls, flags: List[str]) -> List[str]:
        return list(dict.fromkeys(flags))


class DiagnosisOutput(BaseModel):
    diagnosis: str = Field(min_length=1)
    action_plan: List[str] = Field(alias="actionPlan", min_length=1)
    tokens_used: int = 0

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("action_plan")
    @classmethod
    def _clean_actions(cls, actions: List[str]) -> List[str]:
        cleaned = [a.strip() for a in actions if a.strip()]
        if not cleaned:
            raise ValueError("action plan has no usable entries")
        return cleaned[:5]


class AnalysisRequest(BaseModel):
    client_id: str
    agency_id: str
    triggered_by: TriggeredBy = "manual"


class AnalysisResult(BaseModel):
    client_id: str
    agency_id: str

    score_financial: Optional[int] = None
    score_proximity: Optional[int] = None
    score_outcome: Optional[int] = None
    score_nps: Optional[int] = None

    score_total: int = Field(ge=0, le=100)
    churn_risk: ChurnRisk

    flags: List[str] = Field(default_factory=list)
    agents_log: Dict[str, AgentResult] = Field(default_factory=dict)

    diagnosis: str
    action_plan: List[str] = Field(default_factory=list)

    tokens_used: int = 0
    estimated_cost_brl: float = 0.0


class AnalysisOutcome(BaseModel):
    """Structured return value of the public entry point."""

    success: bool
    analysis_id: Optional[str] = None
    result: Optional[AnalysisResult] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None
