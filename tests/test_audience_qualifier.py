import pytest
from pydantic import ValidationError

from panelhub.core.exceptions import NotFoundError, ValidationException
from panelhub.models.audience import AudienceFilter, BulkQualificationUpdate, QualificationDecision
from panelhub.models.panel import SurveyStatus
from panelhub.services.audience_qualifier import (
    AudienceQualifierService, matches_filter, parse_criteria
)
from tests.conftest import run


def seed_population(repo):
    """Ten panelists, exactly three of them women aged 25-34"""
    targets = [
        repo.add_panelist({"gender": "female", "age": 25}),
        repo.add_panelist({"gender": "Female", "age": 30}),
        repo.add_panelist({"gender": "female", "age": 34}),
    ]
    repo.add_panelist({"gender": "female", "age": 24})
    repo.add_panelist({"gender": "female", "age": 35})
    repo.add_panelist({"gender": "male", "age": 30})
    repo.add_panelist({"gender": "male", "age": 28})
    repo.add_panelist({"gender": "female"})
    repo.add_panelist({"age": 29})
    repo.add_panelist({"gender": None, "age": 31})
    return targets


def make_survey(repo, criteria=None, status=SurveyStatus.ACTIVE):
    survey = run(repo.create_survey("admin-1", {
        "title": "Grocery habits",
        "points_reward": 50,
        "estimated_completion_time": 10,
        "qualification_criteria": criteria or {},
    }))
    return run(repo.update_survey(survey.id, {"status": status}))


class TestAudienceFilter:

    def test_camel_case_aliases(self):
        filters = AudienceFilter.model_validate({"gender": "female", "ageMin": 25, "ageMax": 34})
        assert filters.age_min == 25
        assert filters.age_max == 34

    def test_range_lists_expand(self):
        filters = AudienceFilter.model_validate({"age_range": [18, 30], "household_size": [2, 4]})
        assert (filters.age_min, filters.age_max) == (18, 30)
        assert (filters.household_size_min, filters.household_size_max) == (2, 4)

    def test_inverted_range_rejected(self):
        with pytest.raises(ValidationError):
            AudienceFilter.model_validate({"age_min": 40, "age_max": 20})

    def test_malformed_range_list_rejected(self):
        with pytest.raises(ValidationError):
            AudienceFilter.model_validate({"income_range": [1000]})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            AudienceFilter.model_validate({"shoe_size": 42})

    def test_parse_criteria_maps_to_400(self):
        with pytest.raises(ValidationException) as exc:
            parse_criteria({"age_min": 40, "age_max": 20})
        assert exc.value.status_code == 400


class TestMatchesFilter:

    def test_missing_attribute_never_matches(self):
        filters = AudienceFilter(gender="female")
        assert not matches_filter({}, filters)
        assert not matches_filter({"gender": None}, filters)
        assert not matches_filter(None, filters)

    def test_empty_filter_matches_everyone(self):
        assert matches_filter({}, AudienceFilter())

    def test_range_bounds_are_inclusive(self):
        filters = AudienceFilter(age_min=25, age_max=34)
        assert matches_filter({"age": 25}, filters)
        assert matches_filter({"age": 34}, filters)
        assert not matches_filter({"age": 35}, filters)

    def test_numeric_strings_compare_as_numbers(self):
        assert matches_filter({"income": "52000"}, AudienceFilter(income_min=50000))
        assert not matches_filter({"age": "unknown"}, AudienceFilter(age_min=18))

    def test_location_accepts_country_object_and_code_lists(self):
        filters = AudienceFilter(location=["AE", "SA"])
        assert matches_filter({"location": "ae"}, filters)
        assert matches_filter({"location": {"country": "SA", "city": "Riyadh"}}, filters)
        assert not matches_filter({"location": "US"}, filters)

    def test_interests_require_every_listed_value(self):
        filters = AudienceFilter(interests=["travel", "Food"])
        assert matches_filter({"interests": ["food", "travel", "music"]}, filters)
        assert not matches_filter({"interests": ["travel"]}, filters)
        assert not matches_filter({"interests": "travel"}, filters)

    def test_children_flag_must_be_boolean(self):
        filters = AudienceFilter(children_under_18=True)
        assert matches_filter({"children_under_18": True}, filters)
        assert not matches_filter({"children_under_18": "yes"}, filters)


class TestCalculateAudience:

    def test_three_of_ten_match(self, repo):
        targets = seed_population(repo)
        service = AudienceQualifierService(repo)
        filters = AudienceFilter.model_validate({"gender": "female", "ageMin": 25, "ageMax": 34})

        result = run(service.calculate_audience(filters))

        assert result.audience_count == 3
        assert set(result.panelist_ids) == {p.id for p in targets}
        assert result.filter_summary.total_panelists == 10
        assert result.filter_summary.filtered_count == 3
        assert set(result.filter_summary.applied_filters) == {"gender", "age_min", "age_max"}
        assert result.filter_summary.program_panelists is None

    def test_inactive_panelists_excluded(self, repo):
        repo.add_panelist({"gender": "female", "age": 30}, is_active=False)
        result = run(AudienceQualifierService(repo).calculate_audience(AudienceFilter(gender="female")))
        assert result.audience_count == 0

    def test_program_restricts_population(self, repo):
        inside = repo.add_panelist({"gender": "female"})
        repo.add_panelist({"gender": "female"})
        repo.add_program("retail", members=[inside.id])

        result = run(AudienceQualifierService(repo).calculate_audience(
            AudienceFilter(program="retail", gender="female")
        ))
        assert result.panelist_ids == [inside.id]
        assert result.filter_summary.program_panelists == 1

    def test_unknown_program_is_404(self, repo):
        with pytest.raises(NotFoundError):
            run(AudienceQualifierService(repo).calculate_audience(AudienceFilter(program="missing")))


class TestAssignment:

    def test_assign_qualifies_matches_and_excludes_the_rest(self, repo):
        targets = seed_population(repo)
        survey = make_survey(repo)
        service = AudienceQualifierService(repo)
        filters = AudienceFilter.model_validate({"gender": "female", "ageMin": 25, "ageMax": 34})

        result = run(service.assign_temporary_audience(survey.id, filters, "admin-1"))

        assert result.panelist_count == 3
        assert set(run(repo.qualified_panelist_ids(survey.id))) == {p.id for p in targets}
        rows = run(repo.list_qualifications(survey.id))
        assert len(rows) == 10
        assert sum(1 for row in rows if not row.is_qualified) == 7
        assert repo.surveys[survey.id].audience_count == 3
        assert repo.assignments[0]["metadata"]["panelist_count"] == 3

    def test_assignment_is_idempotent(self, repo):
        seed_population(repo)
        survey = make_survey(repo)
        service = AudienceQualifierService(repo)
        filters = AudienceFilter(gender="female", age_min=25, age_max=34)

        run(service.assign_temporary_audience(survey.id, filters, "admin-1"))
        run(service.assign_temporary_audience(survey.id, filters, "admin-1"))

        assert len(run(repo.qualified_panelist_ids(survey.id))) == 3
        assert run(repo.count_qualifications(survey.id)) == 10

    def test_narrower_reassignment_revokes_previous_audience(self, repo):
        young = repo.add_panelist({"gender": "female", "age": 26})
        older = repo.add_panelist({"gender": "female", "age": 45})
        survey = make_survey(repo)
        service = AudienceQualifierService(repo)

        run(service.assign_temporary_audience(survey.id, AudienceFilter(gender="female"), "admin-1"))
        result = run(service.assign_temporary_audience(
            survey.id, AudienceFilter(gender="female", age_max=30), "admin-1"
        ))

        assert result.panelist_count == 1
        assert repo.surveys[survey.id].audience_count == 1
        assert run(repo.qualified_panelist_ids(survey.id)) == [young.id]
        assert run(repo.qualification_map(older.id)) == {survey.id: False}

    def test_no_matches_is_400(self, repo):
        seed_population(repo)
        survey = make_survey(repo)
        with pytest.raises(ValidationException):
            run(AudienceQualifierService(repo).assign_temporary_audience(
                survey.id, AudienceFilter(gender="other"), "admin-1"
            ))

    def test_unknown_survey_is_404(self, repo):
        from uuid import uuid4
        seed_population(repo)
        with pytest.raises(NotFoundError):
            run(AudienceQualifierService(repo).assign_temporary_audience(
                uuid4(), AudienceFilter(gender="female"), "admin-1"
            ))

    def test_preset_assignment_uses_stored_filters(self, repo):
        seed_population(repo)
        survey = make_survey(repo)
        preset = run(repo.create_preset("Young women", None, {"gender": "female", "age_min": 25, "age_max": 34}, "admin-1"))

        result = run(AudienceQualifierService(repo).assign_preset_audience(survey.id, preset.id, "admin-1"))

        assert result.panelist_count == 3
        assert repo.assignments[0]["preset_id"] == preset.id
        row = run(repo.list_qualifications(survey.id))[0]
        assert row.qualification_reason == "Audience preset: Young women"


class TestRecalculation:

    def test_writes_true_and_false_rows(self, repo):
        seed_population(repo)
        survey = make_survey(repo, {"gender": "female", "age_min": 25, "age_max": 34})

        result = run(AudienceQualifierService(repo).recalculate_survey_audience(survey.id))

        assert result.eligible_count == 3
        assert result.total_panelists == 10
        rows = run(repo.list_qualifications(survey.id, limit=100))
        assert sum(1 for row in rows if not row.is_qualified) == 7

    def test_requalify_after_profile_change(self, repo):
        panelist = repo.add_panelist({"gender": "male", "age": 30})
        survey = make_survey(repo, {"gender": "female"}, status=SurveyStatus.DRAFT)
        make_survey(repo, {}, status=SurveyStatus.ACTIVE)
        closed = make_survey(repo, {"gender": "female"}, status=SurveyStatus.INACTIVE)
        service = AudienceQualifierService(repo)

        assert run(service.requalify_panelist(panelist.id)) == 1
        assert run(repo.qualification_map(panelist.id)) == {survey.id: False}

        run(repo.update_profile_data(panelist.id, {"gender": "female", "age": 30}))
        run(service.requalify_panelist(panelist.id))
        qualifications = run(repo.qualification_map(panelist.id))
        assert qualifications[survey.id] is True
        assert closed.id not in qualifications


class TestQualificationAdmin:

    def test_listing_reports_full_total(self, repo):
        seed_population(repo)
        survey = make_survey(repo, {"gender": "female"})
        run(AudienceQualifierService(repo).recalculate_survey_audience(survey.id))

        page = run(AudienceQualifierService(repo).list_qualifications(survey.id, limit=4))

        assert len(page.qualifications) == 4
        assert page.total == 10

    def test_set_single_qualification(self, repo):
        panelist = repo.add_panelist()
        survey = make_survey(repo)
        service = AudienceQualifierService(repo)

        from panelhub.models.audience import QualificationUpdate
        row = run(service.set_qualification(QualificationUpdate(
            survey_id=survey.id, panelist_id=panelist.id, is_qualified=False
        )))
        assert row.qualification_reason == "Manual qualification"
        assert run(repo.qualification_map(panelist.id)) == {survey.id: False}

    def test_bulk_keeps_last_decision_per_panelist(self, repo):
        panelist = repo.add_panelist()
        other = repo.add_panelist()
        survey = make_survey(repo)

        written = run(AudienceQualifierService(repo).bulk_set_qualifications(BulkQualificationUpdate(
            survey_id=survey.id,
            qualifications=[
                QualificationDecision(panelist_id=panelist.id, is_qualified=True),
                QualificationDecision(panelist_id=other.id, is_qualified=True),
                QualificationDecision(panelist_id=panelist.id, is_qualified=False),
            ],
            qualification_reason="Screener review"
        )))

        assert written == 2
        assert run(repo.qualification_map(panelist.id)) == {survey.id: False}
