"""
HTTP tests for the routers: auth cookies, role gating and the guest flow
"""

from loguru import logger

from app.core.config import settings
from app.routers import gifts as gifts_router
from tests.factories import PNG_BYTES, bearer


async def test_root(client):
    resp = await client.get("/")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_login_sets_refresh_cookie(client, scenario):
    resp = await client.post("/auth/login", data={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200

    body = resp.json()
    assert body["role"] == "admin"
    assert body["token_type"] == "bearer"
    assert body["user"]["username"] == "admin"
    assert "password_hash" not in body["user"]

    set_cookie = resp.headers["set-cookie"].lower()
    assert set_cookie.startswith(f"{settings.REFRESH_COOKIE_NAME.lower()}=")
    assert "httponly" in set_cookie
    assert "path=/auth" in set_cookie
    assert "samesite=strict" in set_cookie


async def test_login_failure(client, scenario):
    resp = await client.post("/auth/login", data={"username": "admin", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json() == {"detail": "Invalid username or password", "code": "invalid_credentials"}
    assert resp.headers["www-authenticate"] == "Bearer"


async def test_refresh_uses_cookie(client, scenario):
    login = await client.post("/auth/login", data={"username": "agent_a", "password": "agent123"})
    refresh_token = login.json()["refresh_token"]

    client.cookies.clear()
    client.cookies.set(settings.REFRESH_COOKIE_NAME, refresh_token)
    resp = await client.post("/auth/refresh")

    assert resp.status_code == 200
    assert resp.json()["user"]["role"] == "agent"
    assert resp.json()["access_token"]


async def test_refresh_without_cookie(client, scenario):
    client.cookies.clear()
    resp = await client.post("/auth/refresh")
    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_refresh_token"


async def test_logout(client):
    resp = await client.post("/auth/logout")
    assert resp.status_code == 200
    assert resp.json() == {"message": "Logged out successfully"}


async def test_register_agent_is_admin_only(client, scenario, admin_headers, agent_headers):
    payload = {"name": "Agent C", "username": "agent_c", "password": "agent123"}

    assert (await client.post("/auth/register", json=payload)).status_code == 401
    assert (await client.post("/auth/register", json=payload, headers=agent_headers)).status_code == 403

    resp = await client.post("/auth/register", json=payload, headers=admin_headers)
    assert resp.status_code == 201
    assert resp.json()["role"] == "agent"

    again = await client.post("/auth/register", json=payload, headers=admin_headers)
    assert again.status_code == 409
    assert again.json()["code"] == "duplicate_username"


async def test_request_validation_shape(client, scenario, admin_headers):
    resp = await client.post(
        "/auth/register",
        json={"name": "Agent C", "username": "agent_c", "password": "123"},
        headers=admin_headers,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "validation_error"
    assert [e["field"] for e in body["errors"]] == ["password"]


async def test_users_endpoints(client, scenario, admin_headers, agent_headers):
    resp = await client.get("/users", params={"page": 1, "limit": 1}, headers=admin_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert body["total_pages"] == 2
    assert len(body["users"]) == 1

    assert (await client.get("/users", headers=agent_headers)).status_code == 403

    me = await client.get("/users/me", headers=agent_headers)
    assert me.status_code == 200
    assert me.json()["username"] == "agent_a"
    assert me.json()["token_expires_at"]

    resp = await client.delete(f"/users/{scenario.admin_id}", headers=admin_headers)
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden_role_deletion"


async def test_missing_token(client, scenario):
    resp = await client.get("/gifts")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"


async def test_gift_endpoints(client, scenario, admin_headers, agent_headers):
    files = {"image": ("lamp.png", PNG_BYTES, "image/png")}

    denied = await client.post("/gifts", data={"name": "Brass Lamp"}, files=files, headers=agent_headers)
    assert denied.status_code == 403

    resp = await client.post("/gifts", data={"name": "Brass Lamp"}, files=files, headers=admin_headers)
    assert resp.status_code == 201
    gift = resp.json()
    assert gift["image"].startswith("/uploads/gifts/")

    listing = await client.get("/gifts", headers=agent_headers)
    assert listing.json()["count"] == 3
    assert listing.json()["data"][0]["id"] == gift["id"]

    bad = await client.post(
        "/gifts",
        data={"name": "Brass Lamp"},
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=admin_headers,
    )
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "image"


async def test_event_lifecycle_over_http(client, scenario, admin_headers):
    form = {
        "event_name": "Gupta Engagement",
        "contact_person": "S. Gupta",
        "contact_no": "9988776655",
        "function_name": "Ring Ceremony",
        "function_type": "Engagement",
        "agent_id": str(scenario.agent_id),
        "gifts": [str(g) for g in scenario.gift_ids],
        "event_date": "2026-11-20",
    }
    resp = await client.post("/events", data=form, headers=admin_headers)
    assert resp.status_code == 201
    event = resp.json()
    assert event["status"] == "pending"
    assert [g["id"] for g in event["gifts"]] == scenario.gift_ids
    assert event["guest_form_url"].endswith(f"/guest_form/{event['id']}")

    hidden = await client.get(f"/events/public/{event['id']}")
    assert hidden.status_code == 403
    assert hidden.json()["code"] == "event_not_active"

    bad = await client.put(f"/events/{event['id']}/status", json={"status": "archived"}, headers=admin_headers)
    assert bad.status_code == 400
    assert bad.json()["code"] == "invalid_status"

    ok = await client.put(f"/events/{event['id']}/status", json={"status": "active"}, headers=admin_headers)
    assert ok.status_code == 200
    assert ok.json()["status"] == "active"

    public = await client.get(f"/events/public/{event['id']}")
    assert public.status_code == 200
    assert "contact_no" not in public.json()
    assert public.json()["agent_name"] == "Agent A"

    gone = await client.delete(f"/events/{event['id']}", headers=admin_headers)
    assert gone.status_code == 200
    missing = await client.get(f"/events/{event['id']}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Event not found", "code": "not_found"}


async def test_active_events_for_agent(client, scenario, admin_headers, agent_headers):
    mine = await client.get(f"/events/active/{scenario.agent_id}", headers=agent_headers)
    assert mine.status_code == 200
    assert [e["id"] for e in mine.json()] == [scenario.event_id]

    other = await client.get(f"/events/active/{scenario.other_agent_id}", headers=agent_headers)
    assert other.status_code == 403

    as_admin = await client.get(f"/events/active/{scenario.other_agent_id}", headers=admin_headers)
    assert as_admin.json() == []


async def test_guest_registration_and_redemption(client, scenario, admin_headers, agent_headers):
    payload = {
        "event_id": scenario.event_id,
        "name": "Asha Rao",
        "mobile": "9998887770",
        "gift_id": scenario.gift_ids[0],
        "custom_message": "Best wishes",
    }
    resp = await client.post("/guests/register", json=payload)
    assert resp.status_code == 201
    guest = resp.json()
    assert guest["redeemed"] is False
    assert guest["gift"]["id"] == scenario.gift_ids[0]
    code = guest["code"]

    dup = await client.post("/guests/register", json=payload)
    assert dup.status_code == 409
    assert dup.json()["code"] == "duplicate_registration"

    # verifying needs a staff token
    anon = await client.post("/guests/verify-otp", json={"otp": code, "event_id": scenario.event_id})
    assert anon.status_code == 401

    verified = await client.post(
        "/guests/verify-otp", json={"otp": code, "event_id": scenario.event_id}, headers=agent_headers
    )
    assert verified.status_code == 200
    body = verified.json()
    assert body["message"] == "Guest verified successfully"
    assert body["redeemed_count"] == 1
    assert body["guest"]["redeemed"] is True
    assert body["guest"]["verifier"]["id"] == scenario.agent_id
    assert "code" not in body["guest"]

    other_agent = bearer(scenario.other_agent_id, "agent")
    again = await client.post(
        "/guests/verify-otp", json={"otp": code, "event_id": scenario.event_id}, headers=other_agent
    )
    assert again.status_code == 409
    assert again.json() == {"detail": "OTP already used", "code": "already_redeemed"}

    unknown = await client.post(
        "/guests/verify-otp", json={"otp": "000000", "event_id": scenario.event_id}, headers=agent_headers
    )
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Invalid OTP"

    report = await client.get("/guests", params={"redeemed": "true"}, headers=admin_headers)
    assert report.status_code == 200
    rows = report.json()
    assert len(rows) == 1
    assert rows[0]["status"] == "Claimed"
    assert rows[0]["verified_by"]["name"] == "Agent A"

    assert (await client.get("/guests", headers=agent_headers)).status_code == 403

    stats = await client.get(f"/events/{scenario.event_id}/stats", headers=agent_headers)
    assert stats.json()["redeemed_guests"] == 1
    assert stats.json()["pending_guests"] == 0

    verified_list = await client.get("/guests/verified", params={"event_id": scenario.event_id}, headers=agent_headers)
    assert [g["id"] for g in verified_list.json()] == [guest["id"]]


async def test_gift_in_use_cannot_be_deleted_over_http(client, scenario, admin_headers):
    await client.post(
        "/guests/register",
        json={"event_id": scenario.event_id, "name": "Asha Rao", "mobile": "9998887770", "gift_id": scenario.gift_ids[0]},
    )
    resp = await client.delete(f"/gifts/{scenario.gift_ids[0]}", headers=admin_headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "gift_in_use"


async def test_unexpected_error_is_logged_once(client, scenario, agent_headers, monkeypatch):
    async def broken_list(db):
        raise RuntimeError("catalog unavailable")

    monkeypatch.setattr(gifts_router, "list_gifts", broken_list)

    seen = []
    sink_id = logger.add(seen.append, level="ERROR")
    try:
        resp = await client.get("/gifts", headers=agent_headers)
    finally:
        logger.remove(sink_id)

    assert resp.status_code == 500
    assert resp.json() == {"detail": "Internal server error", "code": "server_error"}
    assert sum("Unhandled error on GET /gifts" in message for message in seen) == 1
