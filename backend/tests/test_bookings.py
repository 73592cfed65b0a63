"""
Tests for booking and slot endpoints.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from interview_booking.models import Offer


@pytest.mark.asyncio
async def test_book_slot(client: AsyncClient, student_headers, slot):
    """Successful booking returns 201 and takes the seat."""
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": slot.id, "notes": "Looking forward to it"},
        headers=student_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    assert data["phase"] == 1
    assert data["message"] == "Interview booked successfully! 0 spot(s) remaining"

    # Full slots drop out of the default listing
    available = await client.get(f"/api/v1/slots/available?company_id={slot.company_id}")
    assert available.json() == []

    listing = await client.get(
        f"/api/v1/slots/available?company_id={slot.company_id}&include_full=true"
    )
    [entry] = listing.json()
    assert entry["confirmed_count"] == 1
    assert entry["available"] == 0


@pytest.mark.asyncio
async def test_book_slot_unauthenticated(client: AsyncClient, slot):
    """Unauthenticated booking returns 401."""
    response = await client.post("/api/v1/bookings/", json={"slot_id": slot.id})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_book_slot_bad_token(client: AsyncClient, slot):
    response = await client.post(
        "/api/v1/bookings/",
        json={"slot_id": slot.id},
        headers={"Authorization": "Bearer not-a-token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_only_students_book(client: AsyncClient, admin_headers, slot):
    response = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=admin_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_book_full_slot(client: AsyncClient, student_headers, headers_for, other_student, slot):
    """Booking a full slot returns 409 with the rejection code."""
    first = await client.post(
        "/api/v1/bookings/", json={"slot_id": slot.id}, headers=headers_for(other_student)
    )
    assert first.status_code == 201

    response = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    assert response.status_code == 409
    data = response.json()
    assert data["success"] is False
    assert data["error_code"] == "SLOT_FULL"
    assert data["booking_id"] is None


@pytest.mark.asyncio
async def test_duplicate_booking(client: AsyncClient, student_headers, event, company, make_slot):
    """Same student booking the same slot twice returns 409."""
    slot = await make_slot(event, company, capacity=2)

    response1 = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    assert response1.status_code == 201

    response2 = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    assert response2.status_code == 409
    assert response2.json()["error_code"] == "ALREADY_BOOKED"


@pytest.mark.asyncio
async def test_book_unknown_slot(client: AsyncClient, student_headers):
    response = await client.post("/api/v1/bookings/", json={"slot_id": 9999}, headers=student_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_my_bookings(client: AsyncClient, student_headers, event, slot):
    booked = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    booking_id = booked.json()["booking_id"]

    response = await client.get(f"/api/v1/bookings/?event_id={event.id}", headers=student_headers)
    assert response.status_code == 200
    [booking] = response.json()
    assert booking["id"] == booking_id
    assert booking["status"] == "confirmed"
    assert booking["booking_phase"] == 1

    single = await client.get(f"/api/v1/bookings/{booking_id}", headers=student_headers)
    assert single.status_code == 200
    assert single.json()["slot_id"] == slot.id


@pytest.mark.asyncio
async def test_someone_elses_booking_is_hidden(
    client: AsyncClient, student_headers, headers_for, other_student, slot
):
    booked = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    booking_id = booked.json()["booking_id"]
    intruder = headers_for(other_student)

    assert (await client.get(f"/api/v1/bookings/{booking_id}", headers=intruder)).status_code == 404
    assert (await client.delete(f"/api/v1/bookings/{booking_id}", headers=intruder)).status_code == 404


@pytest.mark.asyncio
async def test_cancel_booking(client: AsyncClient, student_headers, slot):
    booked = await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    booking_id = booked.json()["booking_id"]

    response = await client.request(
        "DELETE", f"/api/v1/bookings/{booking_id}", json={"reason": "Schedule clash"}, headers=student_headers
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Booking cancelled successfully"

    again = await client.delete(f"/api/v1/bookings/{booking_id}", headers=student_headers)
    assert again.status_code == 200
    assert again.json()["message"] == "Booking is already cancelled"

    booking = await client.get(f"/api/v1/bookings/{booking_id}", headers=student_headers)
    assert booking.json()["status"] == "cancelled"
    assert booking.json()["cancel_reason"] == "Schedule clash"

    active_only = await client.get("/api/v1/bookings/?include_cancelled=false", headers=student_headers)
    assert active_only.json() == []


@pytest.mark.asyncio
async def test_attempt_log_is_admin_only(client: AsyncClient, student_headers, admin_headers, slot):
    await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)
    await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)

    forbidden = await client.get("/api/v1/bookings/attempts", headers=student_headers)
    assert forbidden.status_code == 403

    response = await client.get(f"/api/v1/bookings/attempts?slot_id={slot.id}", headers=admin_headers)
    assert response.status_code == 200
    attempts = response.json()
    assert len(attempts) == 2
    assert sorted(a["success"] for a in attempts) == [False, True]

    failed = await client.get("/api/v1/bookings/attempts?success=false", headers=admin_headers)
    assert [a["error_code"] for a in failed.json()] == ["ALREADY_BOOKED"]


@pytest.mark.asyncio
async def test_available_slots_require_a_filter(client: AsyncClient):
    response = await client.get("/api/v1/slots/available")
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_available_slots_by_offer(client: AsyncClient, db_session, event, company, make_slot):
    offer = (await db_session.execute(select(Offer).where(Offer.company_id == company.id))).scalar_one()
    slot = await make_slot(event, company, capacity=3)

    response = await client.get(f"/api/v1/slots/available?offer_id={offer.id}")
    assert response.status_code == 200
    [entry] = response.json()
    assert entry["id"] == slot.id
    assert entry["available"] == 3


@pytest.mark.asyncio
async def test_deactivate_slot_endpoint(client: AsyncClient, student_headers, admin_headers, slot):
    await client.post("/api/v1/bookings/", json={"slot_id": slot.id}, headers=student_headers)

    refused = await client.patch(
        f"/api/v1/slots/{slot.id}/active", json={"is_active": False}, headers=admin_headers
    )
    assert refused.status_code == 409

    response = await client.patch(
        f"/api/v1/slots/{slot.id}/active",
        json={"is_active": False, "cancel_bookings": True},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["bookings_cancelled"] == 1
    assert response.json()["slot"]["is_active"] is False

    students_cant = await client.patch(
        f"/api/v1/slots/{slot.id}/active", json={"is_active": True}, headers=student_headers
    )
    assert students_cant.status_code == 403
