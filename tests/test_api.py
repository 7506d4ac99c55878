"""Endpoint tests for slots, booking, appointment links and the waitlist."""

from datetime import time, timedelta

from httpx import AsyncClient

from gobering.core.security import create_access_token, create_professional_token
from gobering.models.scheduling import AppointmentStatus
from gobering.utils.time import local_today

API = "/api/v1"


def booking_payload(day, start="10:00", **overrides) -> dict:
    payload = {
        "appointment_date": day.isoformat(),
        "start_time": start,
        "first_name": "Jean",
        "last_name": "Client",
        "email": "jean@example.com",
        "phone": "+15145550123",
    }
    payload.update(overrides)
    return payload


def waitlist_payload(day, **overrides) -> dict:
    payload = {
        "preferred_date": day.isoformat(),
        "first_name": "Luc",
        "last_name": "Attente",
        "phone": "+15145550111",
        "email": "luc@example.com",
    }
    payload.update(overrides)
    return payload


class TestSlotsEndpoint:
    """Tests for GET /professionals/{id}/slots."""

    async def test_lists_slots_with_hhmm_times(self, client: AsyncClient, professional, monday) -> None:
        response = await client.get(
            f"{API}/professionals/{professional.id}/slots",
            params={"from_date": monday.isoformat(), "to_date": monday.isoformat()},
        )

        assert response.status_code == 200
        data = response.json()
        assert len(data) == 16
        assert data[0]["start_time"] == "09:00"
        assert data[0]["end_time"] == "09:30"
        assert data[0]["slot_id"] == f"{professional.id}-{monday.isoformat()}-09:00"

    async def test_available_only_hides_booked(
        self, client: AsyncClient, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(9, 0), time(9, 30))
        params = {"from_date": monday.isoformat(), "to_date": monday.isoformat()}

        everything = await client.get(f"{API}/professionals/{professional.id}/slots", params=params)
        available = await client.get(
            f"{API}/professionals/{professional.id}/slots",
            params={**params, "available_only": "true"},
        )

        assert len(everything.json()) == 16
        assert everything.json()[0]["is_available"] is False
        assert len(available.json()) == 15

    async def test_excluded_slot_needs_owning_professional(
        self, client: AsyncClient, professional, monday, auth_headers
    ) -> None:
        params = {
            "from_date": monday.isoformat(),
            "to_date": monday.isoformat(),
            "excluded_date": monday.isoformat(),
            "excluded_time": "09:00",
        }
        url = f"{API}/professionals/{professional.id}/slots"

        anonymous = await client.get(url, params=params)
        owner = await client.get(url, params=params, headers=auth_headers)

        assert len(anonymous.json()) == 16
        assert len(owner.json()) == 15

    async def test_appointment_exclusion_needs_owning_professional(
        self, client: AsyncClient, professional, monday, make_appointment, auth_headers
    ) -> None:
        appointment = await make_appointment(monday, time(9, 0), time(9, 30))
        url = f"{API}/professionals/{professional.id}/slots"
        params = {
            "from_date": monday.isoformat(),
            "to_date": monday.isoformat(),
            "exclude_appointment_id": appointment.id,
        }
        stranger = {"Authorization": f"Bearer {create_professional_token('someone-else')}"}

        anonymous = await client.get(url, params=params)
        other = await client.get(url, params=params, headers=stranger)
        owner = await client.get(url, params=params, headers=auth_headers)

        assert anonymous.json()[0]["is_available"] is False
        assert other.json()[0]["is_available"] is False
        assert owner.json()[0]["is_available"] is True

    async def test_reschedule_token_frees_own_interval(
        self, client: AsyncClient, professional, monday, make_appointment
    ) -> None:
        await make_appointment(monday, time(9, 0), time(9, 30), token="move-me")
        url = f"{API}/professionals/{professional.id}/slots"
        params = {"from_date": monday.isoformat(), "to_date": monday.isoformat()}

        before = await client.get(url, params=params)
        moving = await client.get(url, params={**params, "reschedule_token": "move-me"})

        assert before.json()[0]["is_available"] is False
        assert moving.json()[0]["is_available"] is True

    async def test_unknown_reschedule_token(self, client: AsyncClient, professional, monday) -> None:
        response = await client.get(
            f"{API}/professionals/{professional.id}/slots",
            params={"from_date": monday.isoformat(), "reschedule_token": "nope"},
        )

        assert response.status_code == 404

    async def test_unknown_professional_has_no_slots(self, client: AsyncClient, monday) -> None:
        response = await client.get(
            f"{API}/professionals/missing/slots",
            params={"from_date": monday.isoformat()},
        )

        assert response.status_code == 200
        assert response.json() == []

    async def test_inverted_range_is_rejected(self, client: AsyncClient, professional, monday) -> None:
        response = await client.get(
            f"{API}/professionals/{professional.id}/slots",
            params={
                "from_date": monday.isoformat(),
                "to_date": (monday - timedelta(days=1)).isoformat(),
            },
        )

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "validation_error"

    async def test_schedule_edit_is_visible_immediately(
        self, client: AsyncClient, professional, monday, auth_headers
    ) -> None:
        url = f"{API}/professionals/{professional.id}/slots"
        params = {"from_date": monday.isoformat(), "to_date": monday.isoformat()}
        assert len((await client.get(url, params=params)).json()) == 16

        response = await client.put(
            f"{API}/me/schedules",
            json={"schedules": [{"day_of_week": 1, "start_time": "08:00", "end_time": "09:00"}]},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert [s["start_time"] for s in (await client.get(url, params=params)).json()] == [
            "08:00",
            "08:30",
        ]


class TestBookingEndpoints:
    """Tests for client booking and link actions."""

    async def test_book_then_conflict(self, client: AsyncClient, professional, monday) -> None:
        url = f"{API}/professionals/{professional.id}/appointments"

        created = await client.post(url, json=booking_payload(monday))
        conflict = await client.post(url, json=booking_payload(monday, start="10:15"))

        assert created.status_code == 201
        assert created.json()["end_time"] == "10:30:00"
        assert created.json()["status"] == "confirmed"
        assert created.json()["cancellation_token"]
        assert conflict.status_code == 409
        assert conflict.json()["detail"]["reason"] == "slot_conflict"

    async def test_book_unknown_professional(self, client: AsyncClient, monday) -> None:
        response = await client.post(
            f"{API}/professionals/missing/appointments", json=booking_payload(monday)
        )

        assert response.status_code == 404
        assert response.json()["detail"]["reason"] == "not_found"

    async def test_invalid_email_is_rejected(self, client: AsyncClient, professional, monday) -> None:
        response = await client.post(
            f"{API}/professionals/{professional.id}/appointments",
            json=booking_payload(monday, email="not-an-email"),
        )

        assert response.status_code == 422

    async def test_token_lookup_and_cancel(self, client: AsyncClient, professional, monday) -> None:
        created = await client.post(
            f"{API}/professionals/{professional.id}/appointments", json=booking_payload(monday)
        )
        token = created.json()["cancellation_token"]

        lookup = await client.get(f"{API}/appointments/token/{token}")
        cancelled = await client.post(f"{API}/appointments/token/{token}/cancel")
        reused = await client.post(f"{API}/appointments/token/{token}/cancel")

        assert lookup.status_code == 200
        assert lookup.json()["id"] == created.json()["id"]
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancelled_by"] == "client"
        assert reused.status_code == 404

    async def test_cancel_inside_notice_window_is_forbidden(
        self, client: AsyncClient, professional, make_appointment
    ) -> None:
        tomorrow = local_today(professional.timezone) + timedelta(days=1)
        await make_appointment(tomorrow, time(0, 0), time(0, 30), token="tok-soon")

        response = await client.post(f"{API}/appointments/token/tok-soon/cancel")

        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["reason"] == "cancellation_notice"
        assert detail["required_hours"] == 24
        assert detail["remaining_hours"] < 24

    async def test_reschedule(self, client: AsyncClient, professional, monday) -> None:
        created = await client.post(
            f"{API}/professionals/{professional.id}/appointments", json=booking_payload(monday)
        )
        token = created.json()["cancellation_token"]

        response = await client.post(
            f"{API}/appointments/token/{token}/reschedule",
            json={"new_date": monday.isoformat(), "new_start_time": "15:00"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["start_time"] == "15:00:00"
        assert data["rescheduled_from_id"] == created.json()["id"]
        assert data["cancellation_token"] != token


class TestWaitlistEndpoints:
    """Tests for joining, claiming and leaving the waitlist."""

    async def test_join_and_read(self, client: AsyncClient, professional, monday) -> None:
        created = await client.post(
            f"{API}/professionals/{professional.id}/waitlist", json=waitlist_payload(monday)
        )

        assert created.status_code == 201
        token = created.json()["token"]
        assert created.json()["status"] == "pending"

        read = await client.get(f"{API}/waitlist/{token}")
        assert read.status_code == 200
        assert "token" not in read.json()

    async def test_join_disabled_waitlist(
        self, client: AsyncClient, async_session, professional, monday
    ) -> None:
        professional.waitlist_enabled = False
        await async_session.commit()

        response = await client.post(
            f"{API}/professionals/{professional.id}/waitlist", json=waitlist_payload(monday)
        )

        assert response.status_code == 403
        assert response.json()["detail"]["reason"] == "waitlist_disabled"

    async def test_freed_slot_is_offered_and_claimed(
        self, client: AsyncClient, professional, monday, make_appointment, auth_headers
    ) -> None:
        appointment = await make_appointment(monday, time(11, 0), time(11, 30))
        joined = await client.post(
            f"{API}/professionals/{professional.id}/waitlist",
            json=waitlist_payload(monday, preferred_time_start="10:00", preferred_time_end="12:00"),
        )
        token = joined.json()["token"]

        cancelled = await client.post(
            f"{API}/me/appointments/{appointment.id}/cancel", headers=auth_headers
        )
        assert cancelled.status_code == 200
        assert cancelled.json()["cancelled_by"] == "professional"

        offer = (await client.get(f"{API}/waitlist/{token}")).json()
        assert offer["status"] == "notified"
        assert offer["available_start_time"] == "11:00:00"

        claimed = await client.post(f"{API}/waitlist/{token}/claim")
        assert claimed.status_code == 201
        assert claimed.json()["start_time"] == "11:00:00"
        assert claimed.json()["first_name"] == "Luc"

        entry = (await client.get(f"{API}/waitlist/{token}")).json()
        assert entry["status"] == "fulfilled"
        assert entry["appointment_id"] == claimed.json()["id"]

    async def test_claim_without_offer_conflicts(self, client: AsyncClient, professional, monday) -> None:
        joined = await client.post(
            f"{API}/professionals/{professional.id}/waitlist", json=waitlist_payload(monday)
        )

        response = await client.post(f"{API}/waitlist/{joined.json()['token']}/claim")

        assert response.status_code == 409
        assert response.json()["detail"]["reason"] == "invalid_transition"

    async def test_leave_waitlist(self, client: AsyncClient, professional, monday) -> None:
        joined = await client.post(
            f"{API}/professionals/{professional.id}/waitlist", json=waitlist_payload(monday)
        )
        token = joined.json()["token"]

        left = await client.post(f"{API}/waitlist/{token}/cancel")
        again = await client.post(f"{API}/waitlist/{token}/cancel")

        assert left.json()["status"] == "cancelled"
        assert again.status_code == 409

    async def test_unknown_token(self, client: AsyncClient) -> None:
        response = await client.get(f"{API}/waitlist/nope")

        assert response.status_code == 404


class TestProfessionalEndpoints:
    """Tests for the authenticated /me calendar."""

    async def test_requires_authentication(self, client: AsyncClient, professional) -> None:
        response = await client.get(f"{API}/me/schedules")

        assert response.status_code == 401

    async def test_rejects_non_professional_token(self, client: AsyncClient, professional) -> None:
        token = create_access_token(professional.id, actor_type="client")

        response = await client.get(
            f"{API}/me/schedules", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 403

    async def test_rejects_unknown_professional(self, client: AsyncClient, professional) -> None:
        token = create_professional_token("missing")

        response = await client.get(
            f"{API}/me/schedules", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 401

    async def test_list_schedules(self, client: AsyncClient, professional, auth_headers) -> None:
        response = await client.get(f"{API}/me/schedules", headers=auth_headers)

        assert response.status_code == 200
        assert [s["day_of_week"] for s in response.json()] == [1, 2, 3, 4, 5]

    async def test_break_crud(self, client: AsyncClient, professional, auth_headers) -> None:
        created = await client.post(
            f"{API}/me/breaks",
            json={"day_of_week": 1, "start_time": "12:00", "end_time": "13:00"},
            headers=auth_headers,
        )
        assert created.status_code == 201
        break_id = created.json()["id"]
        assert created.json()["type"] == "break"

        updated = await client.patch(
            f"{API}/me/breaks/{break_id}",
            json={"type": "unavailability"},
            headers=auth_headers,
        )
        assert updated.json()["type"] == "unavailability"

        deleted = await client.delete(f"{API}/me/breaks/{break_id}", headers=auth_headers)
        assert deleted.status_code == 204

        assert (await client.get(f"{API}/me/breaks", headers=auth_headers)).json() == []

    async def test_break_with_inverted_times(self, client: AsyncClient, professional, auth_headers) -> None:
        response = await client.post(
            f"{API}/me/breaks",
            json={"day_of_week": 1, "start_time": "13:00", "end_time": "12:00"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["reason"] == "validation_error"

    async def test_professional_booking_outside_hours(
        self, client: AsyncClient, professional, monday, auth_headers
    ) -> None:
        response = await client.post(
            f"{API}/me/appointments",
            json={
                "appointment_date": monday.isoformat(),
                "start_time": "19:00",
                "first_name": "Jean",
                "last_name": "Client",
            },
            headers=auth_headers,
        )

        assert response.status_code == 201
        assert response.json()["end_time"] == "19:30:00"

    async def test_status_update_and_listing(
        self, client: AsyncClient, professional, monday, make_appointment, auth_headers
    ) -> None:
        appointment = await make_appointment(monday, time(9, 0), time(9, 30))

        updated = await client.patch(
            f"{API}/me/appointments/{appointment.id}/status",
            json={"status": AppointmentStatus.COMPLETED.value},
            headers=auth_headers,
        )
        completed = await client.get(
            f"{API}/me/appointments", params={"status": "completed"}, headers=auth_headers
        )

        assert updated.json()["status"] == "completed"
        assert [a["id"] for a in completed.json()] == [appointment.id]

    async def test_waitlist_queue(self, client: AsyncClient, professional, monday, auth_headers) -> None:
        for _ in range(2):
            await client.post(
                f"{API}/professionals/{professional.id}/waitlist", json=waitlist_payload(monday)
            )

        queue = await client.get(f"{API}/me/waitlist", headers=auth_headers)
        expired = await client.post(f"{API}/me/waitlist/expire", headers=auth_headers)
        removed = await client.post(
            f"{API}/me/waitlist/{queue.json()[0]['id']}/cancel", headers=auth_headers
        )

        assert len(queue.json()) == 2
        assert "token" not in queue.json()[0]
        assert expired.json() == {"expired": 0}
        assert removed.json()["status"] == "cancelled"

    async def test_materialize(self, client: AsyncClient, professional, monday, auth_headers) -> None:
        response = await client.post(
            f"{API}/me/time-slots/materialize",
            json={"from_date": monday.isoformat(), "to_date": (monday + timedelta(days=6)).isoformat()},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"slots_written": 80}
