from uuid import uuid4

import pytest

from panelhub.core.exceptions import (
    AuthorizationError, NotFoundError, StateConflictError, ValidationException
)
from panelhub.models.audience import QualificationRow
from panelhub.models.panel import (
    SurveyCompletionRequest, SurveyCreate, SurveyResponseItem, SurveyStatus, SurveyUpdate
)
from panelhub.services.audience_qualifier import AudienceQualifierService
from panelhub.services.survey_service import SurveyService
from tests.conftest import run


def new_survey(repo, **overrides):
    request = SurveyCreate(**{
        "title": "Streaming habits",
        "points_reward": 75,
        "estimated_completion_time": 8,
        **overrides,
    })
    return run(SurveyService(repo).create_survey(request, "admin-1"))


def live_survey(repo, **overrides):
    survey = new_survey(repo, **overrides)
    return run(SurveyService(repo).set_status(survey.id, SurveyStatus.ACTIVE, "admin-1"))


class TestSurveyAdministration:

    def test_create_normalizes_criteria(self, repo):
        survey = new_survey(repo, qualification_criteria={"ageMin": 18, "age_range": None, "gender": "female"})
        assert survey.status == SurveyStatus.DRAFT
        assert survey.qualification_criteria == {"gender": "female", "age_min": 18}

    def test_create_rejects_bad_criteria(self, repo):
        with pytest.raises(ValidationException):
            new_survey(repo, qualification_criteria={"age_min": 50, "age_max": 20})

    def test_status_moves_forward_only(self, repo):
        service = SurveyService(repo)
        survey = new_survey(repo)

        run(service.set_status(survey.id, SurveyStatus.ACTIVE, "admin-1"))
        run(service.set_status(survey.id, SurveyStatus.INACTIVE, "admin-1"))

        with pytest.raises(StateConflictError):
            run(service.set_status(survey.id, SurveyStatus.ACTIVE, "admin-1"))
        with pytest.raises(StateConflictError):
            run(service.set_status(survey.id, SurveyStatus.DRAFT, "admin-1"))

    def test_inactive_surveys_are_read_only(self, repo):
        service = SurveyService(repo)
        survey = live_survey(repo)
        updated = run(service.update_survey(survey.id, SurveyUpdate(points_reward=90)))
        assert updated.points_reward == 90

        run(service.set_status(survey.id, SurveyStatus.INACTIVE, "admin-1"))
        with pytest.raises(StateConflictError):
            run(service.update_survey(survey.id, SurveyUpdate(title="Changed")))

    def test_criteria_change_recomputes_qualifications(self, repo):
        woman = repo.add_panelist({"gender": "female"})
        man = repo.add_panelist({"gender": "male"})
        service = SurveyService(repo)
        survey = live_survey(repo, qualification_criteria={"gender": "female"})
        run(AudienceQualifierService(repo).recalculate_survey_audience(survey.id))
        assert run(repo.qualification_map(woman.id)) == {survey.id: True}

        updated = run(service.update_survey(survey.id, SurveyUpdate(qualification_criteria={"gender": "male"})))

        assert updated.qualification_criteria == {"gender": "male"}
        assert updated.audience_count == 1
        assert run(repo.qualification_map(woman.id)) == {survey.id: False}
        assert run(repo.qualification_map(man.id)) == {survey.id: True}

    def test_other_edits_leave_qualifications_alone(self, repo):
        woman = repo.add_panelist({"gender": "female"})
        survey = live_survey(repo, qualification_criteria={"gender": "female"})

        run(SurveyService(repo).update_survey(
            survey.id, SurveyUpdate(title="Renamed", qualification_criteria={"gender": "female"})
        ))

        assert run(repo.qualification_map(woman.id)) == {}

    def test_unknown_survey_is_404(self, repo):
        with pytest.raises(NotFoundError):
            run(SurveyService(repo).get_survey(uuid4()))


class TestAvailability:

    def test_open_surveys_visible_to_everyone(self, repo):
        panelist = repo.add_panelist()
        survey = live_survey(repo)
        new_survey(repo)

        available = run(SurveyService(repo).available_surveys(panelist))
        assert [s.id for s in available] == [survey.id]

    def test_criteria_gate_surveys_without_rows(self, repo):
        man = repo.add_panelist({"gender": "male"})
        woman = repo.add_panelist({"gender": "female"})
        survey = live_survey(repo, qualification_criteria={"gender": "female"})
        service = SurveyService(repo)

        assert run(service.available_surveys(man)) == []
        assert [s.id for s in run(service.available_surveys(woman))] == [survey.id]

    def test_peer_requalification_keeps_survey_open_to_matches(self, repo):
        first = repo.add_panelist({"gender": "female"})
        second = repo.add_panelist({"gender": "female"})
        survey = live_survey(repo, qualification_criteria={"gender": "female"})

        run(AudienceQualifierService(repo).requalify_panelist(first.id))

        assert run(repo.qualification_map(second.id)) == {}
        assert [s.id for s in run(SurveyService(repo).available_surveys(second))] == [survey.id]

    def test_unknown_program_in_criteria_hides_survey(self, repo):
        panelist = repo.add_panelist({"gender": "female"})
        live_survey(repo, qualification_criteria={"gender": "female", "program": "Retired"})
        assert run(SurveyService(repo).available_surveys(panelist)) == []

    def test_qualification_rows_gate_availability(self, repo):
        qualified = repo.add_panelist()
        rejected = repo.add_panelist()
        outsider = repo.add_panelist()
        survey = live_survey(repo)
        run(repo.upsert_qualifications([
            QualificationRow(survey_id=survey.id, panelist_id=qualified.id, is_qualified=True),
            QualificationRow(survey_id=survey.id, panelist_id=rejected.id, is_qualified=False),
        ]))
        service = SurveyService(repo)

        assert len(run(service.available_surveys(qualified))) == 1
        assert run(service.available_surveys(rejected)) == []
        assert run(service.available_surveys(outsider)) == []


class TestCompletion:

    def _complete(self, repo, panelist, survey):
        request = SurveyCompletionRequest(
            survey_id=survey.id,
            responses=[SurveyResponseItem(question_id="q1", response_value="weekly")]
        )
        return run(SurveyService(repo).complete_survey(panelist, request))

    def test_completion_credits_reward(self, repo):
        panelist = repo.add_panelist(points=25)
        survey = live_survey(repo)

        result = self._complete(repo, panelist, survey)

        assert result.points_earned == 75
        assert result.new_balance == 100
        profile = repo.panelists[panelist.id]
        assert profile.surveys_completed == 1
        assert profile.total_points_earned == 100
        entry = repo.ledger[-1]
        assert entry.transaction_type == "survey_completion"
        assert entry.metadata["survey_id"] == str(survey.id)
        assert repo.completions[(survey.id, panelist.id)].response_data["responses"][0]["question_id"] == "q1"

    def test_second_completion_conflicts_without_credit(self, repo):
        panelist = repo.add_panelist()
        survey = live_survey(repo)
        self._complete(repo, panelist, survey)

        with pytest.raises(StateConflictError):
            self._complete(repo, panelist, survey)
        assert repo.panelists[panelist.id].points_balance == 75
        assert run(SurveyService(repo).available_surveys(repo.panelists[panelist.id])) == []

    def test_draft_survey_cannot_be_completed(self, repo):
        panelist = repo.add_panelist()
        survey = new_survey(repo)
        with pytest.raises(ValidationException):
            self._complete(repo, panelist, survey)

    def test_criteria_mismatch_cannot_complete(self, repo):
        man = repo.add_panelist({"gender": "male"})
        survey = live_survey(repo, qualification_criteria={"gender": "female"})
        with pytest.raises(AuthorizationError):
            self._complete(repo, man, survey)
        assert repo.panelists[man.id].points_balance == 0
        assert repo.completions == {}

    def test_unqualified_panelist_rejected(self, repo):
        panelist = repo.add_panelist()
        other = repo.add_panelist()
        survey = live_survey(repo)
        run(repo.upsert_qualifications([
            QualificationRow(survey_id=survey.id, panelist_id=other.id, is_qualified=True)
        ]))
        with pytest.raises(AuthorizationError):
            self._complete(repo, panelist, survey)
        assert repo.panelists[panelist.id].points_balance == 0
