"""Unit tests for the survey (outcome + NPS) agent."""
from datetime import date, datetime, timedelta, timezone

from agents.survey import run_survey_agent
from schemas import SurveySubmission

TODAY = date(2026, 6, 15)
NOON = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def _submission(sid, days_ago, nps, outcome, comment=None):
    return SurveySubmission(
        id=sid,
        submitted_at=NOON - timedelta(days=days_ago),
        nps_score=nps,
        outcome_score=outcome,
        comment=comment,
    )


class TestRunSurveyAgent:
    def test_no_answer_in_90_days_skips_both(self):
        results = run_survey_agent(
            [_submission("s1", 100, 9, 9), _submission("s2", 95, 8, 8)], reference_date=TODAY
        )
        for result in (results.outcome, results.nps):
            assert result.score is None
            assert result.flags == ["no_form_response"]
            assert result.status == "skipped"

    def test_no_submissions_at_all(self):
        results = run_survey_agent([], reference_date=TODAY)
        assert results.outcome.status == "skipped"
        assert results.nps.flags == ["no_form_response"]

    def test_recent_detractor(self):
        results = run_survey_agent([_submission("s1", 10, 5, 8)], reference_date=TODAY)
        assert results.outcome.score == 80
        assert results.outcome.flags == []
        assert results.nps.score == 50
        assert "nps_detractor" in results.nps.flags
        assert "form_silence" not in results.nps.flags
        assert "penalty_no_recent_response" not in results.nps.details

    def test_stale_answer_is_penalized(self):
        results = run_survey_agent([_submission("s1", 45, 9, 7)], reference_date=TODAY)
        assert results.outcome.score == 60
        assert results.nps.score == 80
        assert results.nps.flags == []
        assert results.outcome.details["penalty_no_recent_response"] is True

    def test_detractor_without_recent_answer_is_form_silence(self):
        results = run_survey_agent([_submission("s1", 40, 4, 5)], reference_date=TODAY)
        assert results.nps.score == 30
        assert results.nps.flags == ["nps_detractor", "form_silence"]

    def test_consecutive_low(self):
        results = run_survey_agent(
            [_submission("s1", 20, 3, 6), _submission("s2", 10, 6, 6)], reference_date=TODAY
        )
        assert results.nps.score == 45
        assert "nps_detractor" in results.nps.flags
        assert "nps_consecutive_low" in results.nps.flags

    def test_last_answer_decides_detractor(self):
        results = run_survey_agent(
            [_submission("old", 50, 2, 5), _submission("new", 5, 10, 9)], reference_date=TODAY
        )
        assert "nps_detractor" not in results.nps.flags
        assert results.nps.details["last_nps"] == 10

    def test_penalty_floors_at_zero(self):
        results = run_survey_agent([_submission("s1", 60, 0, 0)], reference_date=TODAY)
        assert results.outcome.score == 0
        assert results.nps.score == 0
