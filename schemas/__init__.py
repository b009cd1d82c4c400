from .payment import NormalizedPayment, PaymentSource, PaymentStatus
from .survey import SurveySubmission
from .messaging import ChatMessage, MessagingClassification
from .client import (
    AgencyCredentials,
    ClientAccount,
    ClientIntegration,
    DomCredentials,
)
from .analysis import (
    AgentResult,
    AgentStatus,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    ChurnRisk,
    DiagnosisOutput,
    TriggeredBy,
)

__all__ = [
    "NormalizedPayment", "PaymentSource", "PaymentStatus",
    "SurveySubmission",
    "ChatMessage", "MessagingClassification",
    "AgencyCredentials", "ClientAccount", "ClientIntegration", "DomCredentials",
    "AgentResult", "AgentStatus", "AnalysisOutcome", "AnalysisRequest",
    "AnalysisResult", "ChurnRisk", "DiagnosisOutput", "TriggeredBy",
]
