from .weights import calc_churn_risk, calc_weighted_score
from .financial import run_financial_agent
from .survey import run_survey_agent
from .messaging import run_messaging_agent
from .diagnosis import DiagnosisError, fallback_diagnosis, run_diagnosis_agent
from .data_fetcher import fetch_client_payments
from .orchestrator import run_analysis
from .scheduler import purge_old_messages, run_scheduled_analyses

__all__ = [
    "calc_churn_risk", "calc_weighted_score",
    "run_financial_agent", "run_survey_agent", "run_messaging_agent",
    "DiagnosisError", "fallback_diagnosis", "run_diagnosis_agent",
    "fetch_client_payments",
    "run_analysis",
    "purge_old_messages", "run_scheduled_analyses",
]
