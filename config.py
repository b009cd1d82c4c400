"""Analysis tunables loaded from the environment.

Every value has a default that matches production behaviour, so an empty
environment yields a working configuration:

  ANALYSIS_OBSERVATION_DAYS     clients younger than this are not analyzed (60)
  ANALYSIS_LOCK_WINDOW_MINUTES  freshness window of the soft run lock (5)
  ANALYSIS_PAYMENT_WINDOW_DAYS  payment lookback (60)
  ANALYSIS_SURVEY_WINDOW_DAYS   survey lookback (90)
  ANALYSIS_MESSAGE_WINDOW_DAYS  chat lookback (60)
  ANALYSIS_MESSAGE_MAX_COUNT    max chat messages loaded per run (1000)
  ANALYSIS_HTTP_TIMEOUT         seconds per provider HTTP request (15)
  ANALYSIS_LLM_TIMEOUT          seconds per LLM call (60)
  ANALYSIS_COST_BRL_PER_1K      estimated BRL cost per 1k LLM tokens (0.055)
  MESSAGE_RETENTION_DAYS        chat cache retention for purge-messages (90)
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass(frozen=True)
class AnalysisConfig:
    observation_days: int = 60
    lock_window_minutes: int = 5
    payment_window_days: int = 60
    survey_window_days: int = 90
    message_window_days: int = 60
    message_max_count: int = 1000
    http_timeout: float = 15.0
    llm_timeout: float = 60.0
    cost_brl_per_1k_tokens: float = 0.055
    message_retention_days: int = 90

    @classmethod
    def from_env(cls) -> "AnalysisConfig":
        return cls(
            observation_days=_int_env("ANALYSIS_OBSERVATION_DAYS", 60),
            lock_window_minutes=_int_env("ANALYSIS_LOCK_WINDOW_MINUTES", 5),
            payment_window_days=_int_env("ANALYSIS_PAYMENT_WINDOW_DAYS", 60),
            survey_window_days=_int_env("ANALYSIS_SURVEY_WINDOW_DAYS", 90),
            message_window_days=_int_env("ANALYSIS_MESSAGE_WINDOW_DAYS", 60),
            message_max_count=_int_env("ANALYSIS_MESSAGE_MAX_COUNT", 1000),
            http_timeout=_float_env("ANALYSIS_HTTP_TIMEOUT", 15.0),
            llm_timeout=_float_env("ANALYSIS_LLM_TIMEOUT", 60.0),
            cost_brl_per_1k_tokens=_float_env("ANALYSIS_COST_BRL_PER_1K", 0.055),
            message_retention_days=_int_env("MESSAGE_RETENTION_DAYS", 90),
        )

    def estimate_cost_brl(self, tokens: int) -> float:
        """Conservative blended estimate, rounded to cents."""
        return round(tokens / 1000 * self.cost_brl_per_1k_tokens, 2)
