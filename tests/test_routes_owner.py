"""Tests for the owner API: auth, business setup and appointment management."""

from contextlib import asynccontextmanager
from types import SimpleNamespace

from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.exc import OperationalError

from app.api.deps import get_owned_business_id
from app.core.security import create_access_token
from app.services import appointment_service

MONDAY = "2026-03-02"


def _create(client, shop, headers, **overrides):
    body = {
        "client_name": "Avi",
        "client_phone": "0529876543",
        "date": MONDAY,
        "time": "09:00",
        "end_time": "09:30",
    }
    body.update(overrides)
    return client.post(f"/api/v1/businesses/{shop['business_id']}/appointments", json=body, headers=headers)


class TestAuth:
    def test_me(self, client, owner_headers):
        response = client.get("/api/v1/auth/me", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["email"] == "dana@mytor.co.il"

    def test_signup_returns_profile(self, client):
        response = client.post(
            "/api/v1/auth/signup",
            json={"email": "Rina@Mytor.co.il", "password": "s3cret-pass", "full_name": " Rina ", "phone": "0541234567"},
        )
        assert response.status_code == 201
        owner = response.json()["owner"]
        assert (owner["email"], owner["full_name"], owner["phone"]) == ("rina@mytor.co.il", "Rina", "0541234567")
        assert response.json()["business_id"] is None

    def test_signup_with_first_business(self, client):
        response = client.post(
            "/api/v1/auth/signup",
            json={
                "email": "rina@mytor.co.il",
                "password": "s3cret-pass",
                "full_name": "Rina",
                "business_name": "Rina Nails",
                "business_slug": "rina-nails",
            },
        )
        assert response.status_code == 201, response.text
        business_id = response.json()["business_id"]
        headers = {"Authorization": f"Bearer {response.json()['access_token']}"}
        business = client.get(f"/api/v1/businesses/{business_id}", headers=headers).json()
        assert business["slug"] == "rina-nails"

    def test_taken_slug_leaves_no_account(self, client, shop):
        body = {
            "email": "rina@mytor.co.il",
            "password": "s3cret-pass",
            "full_name": "Rina",
            "business_name": "Copy",
            "business_slug": "dana-hair",
        }
        response = client.post("/api/v1/auth/signup", json=body)
        assert response.json()["code"] == "SlugTaken"
        login = client.post("/api/v1/auth/login", json={"email": "rina@mytor.co.il", "password": "s3cret-pass"})
        assert login.status_code == 401

    def test_signup_rejects_bad_input(self, client):
        base = {"email": "rina@mytor.co.il", "password": "s3cret-pass", "full_name": "Rina"}
        bad_phone = client.post("/api/v1/auth/signup", json={**base, "phone": "12345"})
        assert bad_phone.json()["code"] == "InvalidPhone"
        half_business = client.post("/api/v1/auth/signup", json={**base, "business_name": "Rina Nails"})
        assert half_business.json()["code"] == "MissingFields"
        short_password = client.post("/api/v1/auth/signup", json={**base, "password": "short"})
        assert short_password.status_code == 422

    def test_update_profile(self, client, owner_headers):
        response = client.put(
            "/api/v1/auth/me", json={"full_name": "Dana Levi", "phone": "0521112233"}, headers=owner_headers
        )
        assert response.status_code == 200
        assert (response.json()["full_name"], response.json()["phone"]) == ("Dana Levi", "0521112233")
        assert client.get("/api/v1/auth/me", headers=owner_headers).json()["full_name"] == "Dana Levi"

        rejected = client.put("/api/v1/auth/me", json={"phone": "999"}, headers=owner_headers)
        assert rejected.status_code == 400
        assert rejected.json()["code"] == "InvalidPhone"

    def test_duplicate_signup(self, client, owner_headers):
        response = client.post(
            "/api/v1/auth/signup", json={"email": "dana@mytor.co.il", "password": "other-pass", "full_name": "Dana"}
        )
        assert response.status_code == 409

    def test_login_and_refresh_rotation(self, client, owner_headers):
        login = client.post("/api/v1/auth/login", json={"email": "dana@mytor.co.il", "password": "s3cret-pass"})
        assert login.status_code == 200
        refresh_token = login.json()["refresh_token"]

        rotated = client.post("/api/v1/auth/refresh", headers={"X-Refresh-Token": refresh_token})
        assert rotated.status_code == 200
        assert rotated.json()["refresh_token"] != refresh_token

        reused = client.post("/api/v1/auth/refresh", headers={"X-Refresh-Token": refresh_token})
        assert reused.status_code == 401

    def test_bad_password(self, client, owner_headers):
        response = client.post("/api/v1/auth/login", json={"email": "dana@mytor.co.il", "password": "nope"})
        assert response.status_code == 401

    def test_requires_token(self, client, shop):
        response = client.get(f"/api/v1/businesses/{shop['business_id']}")
        assert response.status_code == 401


class TestBusinessSetup:
    def test_get_own_business(self, client, shop, owner_headers):
        response = client.get(f"/api/v1/businesses/{shop['business_id']}", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["slug"] == "dana-hair"

    def test_other_owner_is_forbidden(self, client, shop, other_owner_headers):
        response = client.get(f"/api/v1/businesses/{shop['business_id']}", headers=other_owner_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "NotOwner"

    def test_slug_taken(self, client, shop, other_owner_headers):
        response = client.post(
            "/api/v1/businesses", json={"name": "Copy", "slug": "dana-hair"}, headers=other_owner_headers
        )
        assert response.status_code == 400
        assert response.json()["code"] == "SlugTaken"

    def test_overlapping_rule_rejected(self, client, shop, owner_headers):
        response = client.post(
            f"/api/v1/businesses/{shop['business_id']}/availability",
            json={"day_of_week": 1, "start_time": "11:00", "end_time": "13:00"},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "OverlappingRule"

    def test_availability_crud(self, client, shop, owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/availability"
        created = client.post(
            base, json={"day_of_week": 2, "start_time": "16:00", "end_time": "19:00"}, headers=owner_headers
        )
        assert created.status_code == 201
        rules = client.get(base, headers=owner_headers).json()
        assert [(r["day_of_week"], r["start_time"]) for r in rules] == [(1, "09:00"), (2, "16:00")]
        assert client.delete(f"{base}/{created.json()['id']}", headers=owner_headers).status_code == 204
        assert client.delete(f"{base}/{created.json()['id']}", headers=owner_headers).status_code == 404

    def test_blocked_date_hides_slots(self, client, shop, owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/unavailable-dates"
        blocked = client.post(base, json={"date": MONDAY, "reason": "Holiday"}, headers=owner_headers)
        assert blocked.status_code == 201
        again = client.post(base, json={"date": MONDAY}, headers=owner_headers)
        assert again.json()["code"] == "DateAlreadyBlocked"

        slots = client.get(
            f"/api/v1/public/{shop['slug']}/available-slots",
            params={"service_id": shop["service_id"], "date": MONDAY},
        ).json()
        assert slots["available_slots"] == []

        response = _create(client, shop, owner_headers)
        assert response.status_code == 400
        assert response.json()["code"] == "DateBlocked"

        assert client.delete(f"{base}/{blocked.json()['id']}", headers=owner_headers).status_code == 204
        assert client.get(base, headers=owner_headers).json() == []


class TestOwnerAppointments:
    def test_create_and_list(self, client, shop, owner_headers):
        created = _create(client, shop, owner_headers)
        assert created.status_code == 201, created.text
        assert created.json()["status"] == "confirmed"

        listed = client.get(
            f"/api/v1/businesses/{shop['business_id']}/appointments",
            params={"date": MONDAY},
            headers=owner_headers,
        )
        assert listed.status_code == 200
        assert [a["id"] for a in listed.json()] == [created.json()["id"]]

    def test_owner_booking_conflict(self, client, shop, owner_headers):
        first = _create(client, shop, owner_headers).json()
        response = _create(client, shop, owner_headers, time="09:15", end_time="09:45")
        assert response.status_code == 409
        assert response.json()["conflicting_appointment_id"] == first["id"]

    def test_reschedule(self, client, shop, owner_headers):
        created = _create(client, shop, owner_headers).json()
        moved = client.put(f"/api/v1/appointments/{created['id']}", json={"time": "10:00"}, headers=owner_headers)
        assert moved.status_code == 200
        assert (moved.json()["start_time"], moved.json()["end_time"]) == ("10:00", "10:30")

        unchanged = client.put(f"/api/v1/appointments/{created['id']}", json={}, headers=owner_headers)
        assert unchanged.status_code == 200

    def test_status_flow(self, client, shop, owner_headers):
        created = _create(client, shop, owner_headers, status="pending").json()
        url = f"/api/v1/appointments/{created['id']}/status"

        confirmed = client.put(url, json={"status": "confirmed"}, headers=owner_headers)
        assert confirmed.json()["status"] == "confirmed"

        back = client.put(url, json={"status": "pending"}, headers=owner_headers)
        assert back.status_code == 400
        assert back.json()["code"] == "InvalidStatusTransition"

        cancelled = client.put(url, json={"status": "cancelled"}, headers=owner_headers)
        assert cancelled.json()["status"] == "cancelled"

        # a cancelled appointment no longer occupies the slot
        assert _create(client, shop, owner_headers).status_code == 201

    def test_other_owner_cannot_touch(self, client, shop, owner_headers, other_owner_headers):
        created = _create(client, shop, owner_headers).json()
        response = client.delete(f"/api/v1/appointments/{created['id']}", headers=other_owner_headers)
        assert response.status_code == 403

    def test_delete(self, client, shop, owner_headers):
        created = _create(client, shop, owner_headers).json()
        assert client.delete(f"/api/v1/appointments/{created['id']}", headers=owner_headers).status_code == 204
        assert client.delete(f"/api/v1/appointments/{created['id']}", headers=owner_headers).status_code == 404

    def test_store_failure_is_503(self, client, shop, owner_headers, monkeypatch):
        async def broken(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("could not connect"))

        monkeypatch.setattr(appointment_service, "_acquire_store_lock", broken)
        response = _create(client, shop, owner_headers)
        assert response.status_code == 503
        assert response.json()["code"] == "TransientFailure"


class TestScheduleEditing:
    def test_patch_rule(self, client, shop, owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/availability"
        rule_id = client.get(base, headers=owner_headers).json()[0]["id"]

        widened = client.patch(f"{base}/{rule_id}", json={"end_time": "14:00"}, headers=owner_headers)
        assert widened.status_code == 200
        assert (widened.json()["start_time"], widened.json()["end_time"]) == ("09:00", "14:00")

        closed = client.patch(f"{base}/{rule_id}", json={"is_active": False}, headers=owner_headers)
        assert closed.json()["is_active"] is False
        slots = client.get(
            f"/api/v1/public/{shop['slug']}/available-slots",
            params={"service_id": shop["service_id"], "date": MONDAY},
        ).json()
        assert slots["available_slots"] == []

    def test_patch_overlap_and_missing(self, client, shop, owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/availability"
        evening = client.post(
            base, json={"day_of_week": 1, "start_time": "16:00", "end_time": "19:00"}, headers=owner_headers
        ).json()
        overlap = client.patch(f"{base}/{evening['id']}", json={"start_time": "11:00"}, headers=owner_headers)
        assert overlap.status_code == 400
        assert overlap.json()["code"] == "OverlappingRule"
        assert client.patch(f"{base}/999", json={"is_active": False}, headers=owner_headers).status_code == 404

    def test_bulk_replace(self, client, shop, owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/availability"
        response = client.put(
            f"{base}/bulk",
            json={
                "rules": [
                    {"day_of_week": 1, "start_time": "13:00", "end_time": "15:00"},
                    {"day_of_week": 3, "start_time": "09:00", "end_time": "12:00"},
                ]
            },
            headers=owner_headers,
        )
        assert response.status_code == 200, response.text
        assert [(r["day_of_week"], r["start_time"]) for r in response.json()] == [(1, "13:00"), (3, "09:00")]

        slots = client.get(
            f"/api/v1/public/{shop['slug']}/available-slots",
            params={"service_id": shop["service_id"], "date": MONDAY},
        ).json()
        assert slots["available_slots"][0] == "13:00"

    def test_bulk_replace_rejects_overlap(self, client, shop, owner_headers):
        response = client.put(
            f"/api/v1/businesses/{shop['business_id']}/availability/bulk",
            json={
                "rules": [
                    {"day_of_week": 2, "start_time": "09:00", "end_time": "12:00"},
                    {"day_of_week": 2, "start_time": "10:00", "end_time": "11:00"},
                ]
            },
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "OverlappingRule"

    def test_other_owner_cannot_edit(self, client, shop, owner_headers, other_owner_headers):
        base = f"/api/v1/businesses/{shop['business_id']}/availability"
        rule_id = client.get(base, headers=owner_headers).json()[0]["id"]
        response = client.patch(f"{base}/{rule_id}", json={"is_active": False}, headers=other_owner_headers)
        assert response.status_code == 403


class TestServices:
    def test_list_services(self, client, shop, owner_headers):
        response = client.get(f"/api/v1/businesses/{shop['business_id']}/services", headers=owner_headers)
        assert response.status_code == 200
        assert [s["name"] for s in response.json()] == ["Haircut"]

    def test_deactivate_keeps_existing_appointments(self, client, shop, owner_headers):
        booked = _create(client, shop, owner_headers, end_time=None, service_id=shop["service_id"])
        assert booked.status_code == 201, booked.text

        url = f"/api/v1/businesses/{shop['business_id']}/services/{shop['service_id']}"
        removed = client.delete(url, headers=owner_headers)
        assert removed.status_code == 200
        assert removed.json()["is_active"] is False

        listed = client.get(f"/api/v1/businesses/{shop['business_id']}/services", headers=owner_headers).json()
        assert [s["is_active"] for s in listed] == [False]
        page = client.get(f"/api/v1/public/{shop['slug']}").json()
        assert page["services"] == []

        slots = client.get(
            f"/api/v1/public/{shop['slug']}/available-slots",
            params={"service_id": shop["service_id"], "date": MONDAY},
        )
        assert slots.status_code == 404
        assert slots.json()["code"] == "ServiceNotFound"

        appointments = client.get(
            f"/api/v1/businesses/{shop['business_id']}/appointments", headers=owner_headers
        ).json()
        assert [a["id"] for a in appointments] == [booked.json()["id"]]
        # the deactivated service still holds its slot
        overlap = _create(client, shop, owner_headers, time="09:15", end_time="09:45")
        assert overlap.status_code == 409

    def test_deactivate_unknown_service(self, client, shop, owner_headers):
        response = client.delete(f"/api/v1/businesses/{shop['business_id']}/services/999", headers=owner_headers)
        assert response.status_code == 404


class TestEventStream:
    def test_requires_token(self, client, shop):
        assert client.get(f"/api/v1/businesses/{shop['business_id']}/events").status_code == 401

    def test_other_owner_is_forbidden(self, client, shop, other_owner_headers):
        response = client.get(f"/api/v1/businesses/{shop['business_id']}/events", headers=other_owner_headers)
        assert response.status_code == 403
        assert response.json()["code"] == "NotOwner"

    def test_unknown_business(self, client, owner_headers):
        response = client.get("/api/v1/businesses/999/events", headers=owner_headers)
        assert response.status_code == 404

    async def test_ownership_check_releases_its_session(self, session_maker, seeded):
        events = []

        @asynccontextmanager
        async def tracking_session():
            events.append("open")
            async with session_maker() as s:
                yield s
            events.append("closed")

        request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(session_maker=tracking_session)))
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=create_access_token(seeded.owner.id)
        )
        owned_id = await get_owned_business_id(seeded.business.id, request, credentials)
        assert owned_id == seeded.business.id
        assert events == ["open", "closed"]
