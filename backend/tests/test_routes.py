from camphq.extensions import db
from camphq.models import PickupToken, TokenBlocklist
from camphq.services import registrations


def test_login_and_me(client, users):
    response = client.post("/auth/login", json={"username": "director_user", "password": "director-pass"})
    assert response.status_code == 200
    token = response.get_json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.get_json()["role"] == "director"


def test_login_with_wrong_password(client, users, app):
    response = client.post("/auth/login", json={"username": "director_user", "password": "nope"})

    assert response.status_code == 401
    with open(app.config["AUDIT_LOG_FILE"]) as fh:
        assert "LOGIN_FAILED" in fh.read()


def test_logout_blocks_the_token(client, auth_headers):
    headers = auth_headers("coach")

    assert client.post("/auth/logout", headers=headers).status_code == 200
    assert TokenBlocklist.query.count() == 1
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_requests_without_token_are_rejected(client, camp):
    assert client.get("/camps").status_code == 401


def test_list_camps(client, camp, auth_headers):
    response = client.get("/camps?search=Summer", headers=auth_headers("coach"))

    assert response.status_code == 200
    data = response.get_json()
    assert data["total"] == 1
    assert data["items"][0]["name"] == "Summer Multi-Sport Week"


def test_coach_cannot_start_a_day(client, camp_day, auth_headers):
    response = client.post(f"/camp-days/{camp_day.id}/start", headers=auth_headers("coach"))

    assert response.status_code == 403
    assert response.get_json()["error"] == "unauthorized"


def test_day_with_token_pickup(client, camp, enroll, auth_headers, frozen_clock):
    (athlete, _), = enroll(1)
    director, coach = auth_headers("director"), auth_headers("coach")

    day = client.get(f"/camps/{camp.id}/days/2026-07-06", headers=coach).get_json()
    assert client.post(f"/camp-days/{day['id']}/start", headers=director).status_code == 200

    frozen_clock.at(9, 0)
    checked_in = client.post(f"/camp-days/{day['id']}/check-in", json={"athlete_id": athlete.id}, headers=coach)
    assert checked_in.get_json()["status"] == "checked_in"

    frozen_clock.at(9, 5)
    generated = client.post(f"/pickup/days/{day['id']}/tokens", headers=director)
    assert generated.status_code == 201
    token_id = generated.get_json()["succeeded"][0]["token_id"]
    secret = db.session.get(PickupToken, token_id).secret

    frozen_clock.at(15, 0)
    redeemed = client.post("/pickup/redeem", json={"token": secret}, headers=coach)
    assert redeemed.status_code == 200
    assert redeemed.get_json()["attendance"]["check_out_method"] == "token_redemption"

    again = client.post("/pickup/redeem", json={"token": secret}, headers=coach)
    assert again.status_code == 409
    assert again.get_json()["error"] == "already_redeemed"

    stats = client.get(f"/camp-days/{day['id']}/stats", headers=coach).get_json()
    assert stats["checked_out"] == 1


def test_typed_checkout_without_name(client, camp_day, enroll, auth_headers):
    (athlete, _), = enroll(1)
    coach = auth_headers("coach")
    client.post(f"/camp-days/{camp_day.id}/check-in", json={"athlete_id": athlete.id}, headers=coach)

    response = client.post(f"/camp-days/{camp_day.id}/check-out", json={"athlete_id": athlete.id}, headers=coach)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_request"


def test_missing_athlete_id(client, camp_day, auth_headers):
    response = client.post(f"/camp-days/{camp_day.id}/check-in", json={}, headers=auth_headers("coach"))

    assert response.status_code == 400
    assert response.get_json()["fields"] == ["athlete_id"]


def test_end_day_reports_batches(client, camp_day, enroll, auth_headers):
    enroll(2)
    director = auth_headers("director")
    client.post(f"/camp-days/{camp_day.id}/start", headers=director)

    response = client.post(f"/camp-days/{camp_day.id}/end", json={"send_notifications": True}, headers=director)

    assert response.status_code == 200
    body = response.get_json()
    assert body["camp_day"]["status"] == "finished"
    assert len(body["absences"]["succeeded"]) == 2
    assert body["checkouts"]["failed"] == []


def test_full_camp_registration_conflict(client, camp, enroll, make_athlete, auth_headers):
    enroll(10)

    response = client.post(
        f"/camps/{camp.id}/registrations", json={"athlete_id": make_athlete().id}, headers=auth_headers("director")
    )

    assert response.status_code == 409
    assert response.get_json()["error"] == "capacity_unavailable"


def test_waitlist_flow_over_http(client, camp, enroll, make_athlete, auth_headers, frozen_clock):
    full = enroll(10)
    director, scheduler = auth_headers("director"), auth_headers("scheduler")

    joined = client.post(f"/waitlist/camps/{camp.id}", json={"athlete_id": make_athlete().id}, headers=director)
    assert joined.status_code == 201
    assert joined.get_json()["position"] == 1
    entry_id = joined.get_json()["registration"]["id"]

    cancelled = client.post(f"/camps/registrations/{full[0][1].id}/cancel", json={}, headers=director)
    assert cancelled.get_json()["status"] == "cancelled"
    position = client.get(f"/waitlist/{entry_id}/position", headers=director).get_json()
    assert position["status"] == "offered"

    swept = client.post("/waitlist/sweep", headers=scheduler)
    assert swept.status_code == 200
    assert swept.get_json()["offers"]["succeeded"] == []

    offer_token = registrations.get_registration(entry_id).offer_token
    details = client.get(f"/waitlist/offer/{offer_token}")
    assert details.status_code == 200
    assert details.get_json()["status"] == "offered"

    accepted = client.post(f"/waitlist/offer/{offer_token}/accept", json={})
    assert accepted.status_code == 200
    assert accepted.get_json()["checkout"]["reference"] == f"chk_test_{entry_id}"

    confirmed = client.post(f"/waitlist/{entry_id}/payment-confirmed", json={}, headers=director)
    assert confirmed.get_json()["status"] == "confirmed"


def test_unknown_offer_token(client, app):
    response = client.get("/waitlist/offer/does-not-exist")

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_sweeps_require_scheduler_role(client, auth_headers):
    assert client.post("/waitlist/sweep", headers=auth_headers("coach")).status_code == 403
    response = client.post("/pickup/sweep", headers=auth_headers("scheduler"))
    assert response.status_code == 200
    assert response.get_json() == {"expired": 0}


def test_redeem_is_rate_limited(client, app, auth_headers):
    app.config["PICKUP_REDEEM_LIMIT"] = "2 per minute"
    coach = auth_headers("coach")

    for _ in range(2):
        assert client.post("/pickup/redeem", json={"token": "nope"}, headers=coach).status_code == 404
    response = client.post("/pickup/redeem", json={"token": "nope"}, headers=coach)

    assert response.status_code == 429
    assert response.get_json()["error"] == "rate_limited"


def test_issue_token_for_one_athlete(client, camp_day, enroll, auth_headers):
    (athlete, _), = enroll(1)
    director = auth_headers("director")
    client.post(f"/camp-days/{camp_day.id}/check-in", json={"athlete_id": athlete.id}, headers=director)
    url = f"/pickup/days/{camp_day.id}/athletes/{athlete.id}/token"

    issued = client.post(url, headers=director)
    assert issued.status_code == 201
    assert issued.get_json()["secret"]

    repeat = client.post(url, headers=director)
    assert repeat.status_code == 200
    assert repeat.get_json()["id"] == issued.get_json()["id"]
