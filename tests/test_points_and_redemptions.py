from uuid import uuid4

import pytest

from panelhub.core.exceptions import NotFoundError, ValidationException
from panelhub.models.panel import (
    OfferCreate, OfferUpdate, PointAdjustmentRequest, ProfileUpdate, RedemptionRequest, SurveyStatus
)
from panelhub.services.panelist_service import PanelistService
from panelhub.services.points_service import PointsService
from panelhub.services.redemption_service import RedemptionService
from tests.conftest import run


def make_offer(repo, points_required=300, is_active=True):
    return run(RedemptionService(repo).create_offer(OfferCreate(
        title="Coffee voucher",
        points_required=points_required,
        merchant_name="Bean There",
        is_active=is_active,
    ), "admin-1"))


class TestRedemption:

    def test_redeem_debits_exactly_once(self, repo):
        panelist = repo.add_panelist(points=500)
        offer = make_offer(repo)

        result = run(RedemptionService(repo).redeem(panelist, RedemptionRequest(offer_id=offer.id)))

        assert result.points_spent == 300
        assert result.new_balance == 200
        assert result.total_redeemed == 300
        debits = [e for e in repo.ledger if e.transaction_type == "redemption"]
        assert len(debits) == 1
        assert debits[0].points == -300
        assert repo.redemptions[0].status == "completed"

    def test_insufficient_balance_reports_amounts(self, repo):
        panelist = repo.add_panelist(points=120)
        offer = make_offer(repo)

        with pytest.raises(ValidationException) as exc:
            run(RedemptionService(repo).redeem(panelist, RedemptionRequest(offer_id=offer.id)))

        assert exc.value.status_code == 400
        assert exc.value.detail == {"message": "Insufficient points", "required": 300, "available": 120}
        assert repo.redemptions == []
        assert repo.panelists[panelist.id].points_balance == 120

    def test_stale_balance_never_overdraws(self, repo):
        panelist = repo.add_panelist(points=400)
        offer = make_offer(repo)
        service = RedemptionService(repo)

        run(service.redeem(panelist, RedemptionRequest(offer_id=offer.id)))
        # Second request still carries the profile read before the first debit
        with pytest.raises(ValidationException) as exc:
            run(service.redeem(panelist, RedemptionRequest(offer_id=offer.id)))

        assert exc.value.detail["available"] == 100
        assert repo.panelists[panelist.id].points_balance == 100
        assert len(repo.redemptions) == 1

    def test_inactive_offer_rejected(self, repo):
        panelist = repo.add_panelist(points=1000)
        offer = make_offer(repo, is_active=False)
        with pytest.raises(ValidationException):
            run(RedemptionService(repo).redeem(panelist, RedemptionRequest(offer_id=offer.id)))

    def test_unknown_offer_is_404(self, repo):
        panelist = repo.add_panelist(points=1000)
        with pytest.raises(NotFoundError):
            run(RedemptionService(repo).redeem(panelist, RedemptionRequest(offer_id=uuid4())))


class TestOffers:

    def test_listing_filters_and_sorts(self, repo):
        make_offer(repo, 900)
        cheap = make_offer(repo, 100)
        make_offer(repo, 500)
        make_offer(repo, 200, is_active=False)

        offers = run(RedemptionService(repo).list_offers(max_points=600)).offers

        assert [o.points_required for o in offers] == [100, 500]
        assert offers[0].id == cheap.id

    def test_update_offer(self, repo):
        offer = make_offer(repo)
        updated = run(RedemptionService(repo).update_offer(offer.id, OfferUpdate(is_active=False), "admin-1"))
        assert not updated.is_active
        with pytest.raises(NotFoundError):
            run(RedemptionService(repo).update_offer(uuid4(), OfferUpdate(title="x"), "admin-1"))


class TestPointAdjustments:

    def test_award_and_deduct(self, repo):
        panelist = repo.add_panelist(points=50)
        service = PointsService(repo)

        run(service.adjust_points(PointAdjustmentRequest(panelist_id=panelist.id, points=30, title="Bonus"), "root"))
        entry = run(service.adjust_points(
            PointAdjustmentRequest(panelist_id=panelist.id, points=-60, title="Correction"), "root"
        ))

        assert entry.transaction_type == "manual_deduction"
        assert entry.points == -60
        assert run(service.get_balance(panelist.id)).points_balance == 20

    def test_deduction_cannot_overdraw(self, repo):
        panelist = repo.add_panelist(points=10)
        with pytest.raises(ValidationException):
            run(PointsService(repo).adjust_points(
                PointAdjustmentRequest(panelist_id=panelist.id, points=-11, title="Too much"), "root"
            ))
        assert repo.panelists[panelist.id].points_balance == 10

    def test_zero_adjustment_rejected(self):
        with pytest.raises(ValueError):
            PointAdjustmentRequest(panelist_id=uuid4(), points=0, title="Nothing")

    def test_ledger_filter(self, repo):
        panelist = repo.add_panelist()
        service = PointsService(repo)
        run(service.adjust_points(PointAdjustmentRequest(panelist_id=panelist.id, points=5, title="A"), "root"))
        run(repo.credit_points(panelist.id, 7, "survey_completion", "Survey"))

        ledger = run(service.list_ledger(panelist.id, "manual_award"))
        assert [e.points for e in ledger.entries] == [5]


class TestPanelistProfile:

    def test_get_or_create_is_stable(self, repo):
        service = PanelistService(repo)
        first = run(service.get_or_create("user-9"))
        second = run(service.get_or_create("user-9"))
        assert first.id == second.id

    def test_update_merges_and_requalifies(self, repo):
        panelist = repo.add_panelist({"gender": "male", "age": 40})
        survey = run(repo.create_survey("admin-1", {
            "title": "Parents", "points_reward": 10, "estimated_completion_time": 5,
            "qualification_criteria": {"children_under_18": True},
        }))
        run(repo.update_survey(survey.id, {"status": SurveyStatus.ACTIVE}))

        updated = run(PanelistService(repo).update_profile(
            panelist.user_id, ProfileUpdate(profile_data={"children_under_18": True, "age": None})
        ))

        assert updated.profile_data == {"gender": "male", "children_under_18": True}
        assert run(repo.qualification_map(panelist.id)) == {survey.id: True}
        assert repo.activity[-1].activity_type == "profile_updated"

    def test_unchanged_profile_skips_write(self, repo):
        panelist = repo.add_panelist({"gender": "male"})
        run(PanelistService(repo).update_profile(panelist.user_id, ProfileUpdate(profile_data={"gender": "male"})))
        assert repo.activity == []

    def test_deactivate(self, repo):
        panelist = repo.add_panelist()
        profile = run(PanelistService(repo).set_active(panelist.id, False, "admin-1"))
        assert not profile.is_active
        with pytest.raises(NotFoundError):
            run(PanelistService(repo).set_active(uuid4(), False, "admin-1"))
