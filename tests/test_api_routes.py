from datetime import datetime, timedelta, timezone

from panelhub.models.auth import UserRole
from tests.conftest import run

API = "/api/v1"


def window():
    now = datetime.now(timezone.utc)
    return (now - timedelta(hours=1)).isoformat(), (now + timedelta(days=7)).isoformat()


def create_contest(api, **overrides):
    start, end = window()
    body = {"title": "Weekly sprint", "start_date": start, "end_date": end, "prize_points": 500, **overrides}
    response = api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.post(f"{API}/admin/contests", json=body)
    assert response.status_code == 201, response.text
    return response.json()["contest"]


class TestAuthAndPermissions:

    def test_missing_token_is_401(self, api):
        from main import app
        from panelhub.middleware.auth_middleware import get_current_user
        del app.dependency_overrides[get_current_user]

        response = api.http.get(f"{API}/panelist/profile")
        assert response.status_code == 401

    def test_panelist_cannot_use_admin_routes(self, api):
        response = api.as_user("user-1").http.get(f"{API}/admin/contests")
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    def test_survey_admin_cannot_adjust_points(self, api):
        response = api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.get(f"{API}/admin/point-ledger")
        assert response.status_code == 403

    def test_malformed_body_is_400(self, api):
        response = api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.post(
            f"{API}/admin/contests", json={"title": "No dates"}
        )
        assert response.status_code == 400
        assert isinstance(response.json()["detail"], list)


class TestAudienceRoutes:

    def test_filter_preview(self, api, repo):
        for age in (25, 30, 34, 40):
            repo.add_panelist({"gender": "female", "age": age})
        repo.add_panelist({"gender": "male", "age": 30})

        response = api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.post(
            f"{API}/admin/audiences/filter",
            json={"filters": {"gender": "female", "ageMin": 25, "ageMax": 34}}
        )

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["audience_count"] == 3
        assert body["filter_summary"]["total_panelists"] == 5

    def test_inverted_range_is_400(self, api):
        response = api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.post(
            f"{API}/admin/audiences/filter", json={"filters": {"age_min": 40, "age_max": 20}}
        )
        assert response.status_code == 400


class TestContestRoutes:

    def test_contest_flow(self, api, repo):
        contest = create_contest(api)
        contest_id = contest["id"]
        assert contest["status"] == "draft"

        panelist_client = api.as_user("user-1")
        assert panelist_client.http.post(f"{API}/contests/{contest_id}/join").status_code == 400
        assert panelist_client.http.get(f"{API}/contests/{contest_id}/leaderboard").status_code == 404

        admin = api.as_user("admin-1", UserRole.SURVEY_ADMIN)
        started = admin.http.post(f"{API}/admin/contests/{contest_id}/start")
        assert started.status_code == 200
        assert started.json()["contest"]["status"] == "active"
        assert admin.http.post(f"{API}/admin/contests/{contest_id}/start").status_code == 409

        panelist_client = api.as_user("user-1")
        joined = panelist_client.http.post(f"{API}/contests/{contest_id}/join")
        assert joined.status_code == 201
        assert panelist_client.http.post(f"{API}/contests/{contest_id}/join").status_code == 409

        visible = panelist_client.http.get(f"{API}/contests").json()
        assert [c["id"] for c in visible] == [contest_id]
        assert visible[0]["participant_count"] == 1

        admin = api.as_user("admin-1", UserRole.SURVEY_ADMIN)
        assert admin.http.post(f"{API}/admin/contests/{contest_id}/end").json()["contest"]["status"] == "ended"

        panelist_id = joined.json()["participation"]["panelist_id"]
        award = admin.http.post(f"{API}/admin/contests/{contest_id}/award-prize", json={"panelist_id": panelist_id})
        assert award.status_code == 200, award.text
        assert award.json()["points_awarded"] == 500

        again = admin.http.post(f"{API}/admin/contests/{contest_id}/award-prize", json={"panelist_id": panelist_id})
        assert again.status_code == 409

        balance = api.as_user("user-1").http.get(f"{API}/points/balance").json()
        assert balance["points_balance"] == 500

    def test_selected_contest_leaderboard_denied_to_outsiders(self, api, repo):
        invited = repo.add_panelist(user_id="user-invited")
        contest = create_contest(api, invite_type="selected_panelists", panelist_ids=[invited.user_id])
        api.as_user("admin-1", UserRole.SURVEY_ADMIN).http.post(f"{API}/admin/contests/{contest['id']}/start")

        response = api.as_user("user-outsider").http.get(f"{API}/contests/{contest['id']}/leaderboard")
        assert response.status_code == 403

        response = api.as_user("user-invited").http.get(f"{API}/contests/{contest['id']}/leaderboard")
        assert response.status_code == 200


class TestSurveyAndRedemptionRoutes:

    def test_complete_then_redeem(self, api, repo):
        admin = api.as_user("admin-1", UserRole.SURVEY_ADMIN)
        survey = admin.http.post(f"{API}/surveys", json={
            "title": "Travel plans", "points_reward": 250, "estimated_completion_time": 5
        }).json()
        assert admin.http.post(f"{API}/surveys/{survey['id']}/status", json={"status": "active"}).status_code == 200
        offer = admin.http.post(f"{API}/offers", json={
            "title": "Cinema ticket", "points_required": 400, "merchant_name": "Vox"
        }).json()

        panelist = api.as_user("user-7")
        available = panelist.http.get(f"{API}/surveys/available").json()
        assert [s["id"] for s in available] == [survey["id"]]

        completion = panelist.http.post(f"{API}/surveys/complete", json={"survey_id": survey["id"], "responses": []})
        assert completion.status_code == 201, completion.text
        assert completion.json()["new_balance"] == 250
        assert panelist.http.post(
            f"{API}/surveys/complete", json={"survey_id": survey["id"], "responses": []}
        ).status_code == 409

        short = panelist.http.post(f"{API}/redemptions", json={"offer_id": offer["id"]})
        assert short.status_code == 400
        assert short.json()["detail"] == {"message": "Insufficient points", "required": 400, "available": 250}

        profile = run(repo.get_panelist_by_user("user-7"))
        run(repo.credit_points(profile.id, 200, "manual_award", "Top up"))
        redeemed = panelist.http.post(f"{API}/redemptions", json={"offer_id": offer["id"]})
        assert redeemed.status_code == 201
        assert redeemed.json()["new_balance"] == 50

        ledger = panelist.http.get(f"{API}/panelist/point-ledger").json()
        assert [e["transaction_type"] for e in ledger["entries"]] == ["redemption", "manual_award", "survey_completion"]

    def test_public_offer_listing(self, api, repo):
        run(repo.create_offer({"title": "Gym day pass", "points_required": 150, "merchant_name": "FitCo"}))
        response = api.http.get(f"{API}/offers")
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_deactivated_panelist_blocked(self, api, repo):
        panelist = repo.add_panelist(user_id="user-off", is_active=False)
        response = api.as_user(panelist.user_id).http.get(f"{API}/surveys/available")
        assert response.status_code == 403


class TestHealth:

    def test_reports_database_outage(self, api):
        response = api.http.get(f"{API}/health")
        assert response.status_code == 200
        body = response.json()
        assert body["components"]["database"]["status"] == "unhealthy"
        assert body["status"] == "unhealthy"
