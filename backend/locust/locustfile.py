"""
Locust Load Test Suite

Accounts live in the surrounding platform, so the load test signs its own
tokens with the service's SECRET_KEY for users that already exist:

  LOAD_ADMIN_ID=1 LOAD_STUDENT_IDS=2-201 LOAD_COMPANY_ID=1 \
  SECRET_KEY=... locust -f locustfile.py --host http://localhost:8000

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overbooking
  locust -f locustfile.py --tags browse       # Test availability reads
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

Set LOAD_SLOT_ID to hammer an existing slot instead of creating one.
"""

import os
import random
from datetime import datetime, timezone, timedelta

import requests
from locust import HttpUser, task, between, tag, events

from interview_booking.core.security import create_access_token

ADMIN_ID = int(os.getenv("LOAD_ADMIN_ID", "1"))
COMPANY_ID = int(os.getenv("LOAD_COMPANY_ID", "1"))
SLOT_CAPACITY = int(os.getenv("LOAD_SLOT_CAPACITY", "10"))

# Shared state
CONCURRENCY_SLOT_ID = int(os.getenv("LOAD_SLOT_ID", "0")) or None
EVENT_ID = None


def student_ids():
    first, _, last = os.getenv("LOAD_STUDENT_IDS", "2-201").partition("-")
    return list(range(int(first), int(last or first) + 1))


STUDENT_IDS = student_ids()


def headers_for(user_id, role="student"):
    token = create_access_token(
        data={"sub": str(user_id), "role": role},
        expires_delta=timedelta(hours=2),
    )
    return {"Authorization": f"Bearer {token}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: one event, phase 1 pinned open, one slot with limited capacity."""
    global CONCURRENCY_SLOT_ID, EVENT_ID
    if CONCURRENCY_SLOT_ID:
        print(f"\nUsing existing slot {CONCURRENCY_SLOT_ID}\n")
        return

    print("\n" + "=" * 60)
    print("SETUP: Creating concurrency test event...")
    print("=" * 60)

    base = environment.host.rstrip("/") + "/api/v1"
    admin = headers_for(ADMIN_ID, role="admin")
    now = datetime.now(timezone.utc)
    day = (now + timedelta(days=30)).date()

    resp = requests.post(f"{base}/events/", headers=admin, json={
        "name": "Concurrency Test Fair",
        "date": day.isoformat(),
        "phase_mode": "manual",
        "slots_per_time": SLOT_CAPACITY,
        "phase1_start": (now - timedelta(days=1)).isoformat(),
        "phase1_end": (now + timedelta(days=10)).isoformat(),
        "phase2_start": (now + timedelta(days=11)).isoformat(),
        "phase2_end": (now + timedelta(days=20)).isoformat(),
    })
    resp.raise_for_status()
    EVENT_ID = resp.json()["id"]

    requests.put(f"{base}/events/{EVENT_ID}/phase", headers=admin, json={"phase": 1}).raise_for_status()
    requests.post(f"{base}/events/{EVENT_ID}/time-ranges", headers=admin, json={
        "day": day.isoformat(), "start_time": "09:00", "end_time": "09:15",
    }).raise_for_status()
    requests.post(
        f"{base}/events/{EVENT_ID}/participants", headers=admin, json={"company_id": COMPANY_ID}
    ).raise_for_status()
    requests.post(f"{base}/events/{EVENT_ID}/slots/generate", headers=admin).raise_for_status()

    slots = requests.get(
        f"{base}/slots/available", params={"company_id": COMPANY_ID, "event_id": EVENT_ID}
    ).json()
    CONCURRENCY_SLOT_ID = slots[0]["id"]
    print(f"\n✓ Created slot {CONCURRENCY_SLOT_ID} with {SLOT_CAPACITY} seats\n")


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many students → one slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT COUNT(*) FROM bookings WHERE slot_id = X AND status = 'confirmed';
    Should be ≤ LOAD_SLOT_CAPACITY
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = headers_for(random.choice(STUDENT_IDS))

    @tag("concurrency")
    @task
    def book_last_seats(self):
        """All users fight for the same seats."""
        if not CONCURRENCY_SLOT_ID:
            return

        with self.client.post("/api/v1/bookings/",
            json={"slot_id": CONCURRENCY_SLOT_ID},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: full, already booked, limit reached
            elif resp.status_code == 503:
                resp.success()  # Expected under contention: retry later
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class BrowseUser(HttpUser):
    """
    TEST 2: Availability reads while bookings land

    Run: locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.headers = headers_for(random.choice(STUDENT_IDS))

    @tag("browse", "read")
    @task(10)
    def list_available_slots(self):
        self.client.get(
            f"/api/v1/slots/available?company_id={COMPANY_ID}&include_full=true",
            name="/api/v1/slots/available",
        )

    @tag("browse", "read")
    @task(3)
    def check_booking_limit(self):
        if EVENT_ID:
            self.client.get(
                f"/api/v1/events/{EVENT_ID}/booking-limit",
                headers=self.headers,
                name="/api/v1/events/{id}/booking-limit",
            )

    @tag("browse")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = headers_for(random.choice(STUDENT_IDS))

    @tag("edge")
    @task
    def invalid_slot_id(self):
        """Book non-existent slot."""
        with self.client.post("/api/v1/bookings/",
            json={"slot_id": 999999},
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post("/api/v1/bookings/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")

    @tag("edge")
    @task
    def missing_auth(self):
        """Try booking without auth."""
        with self.client.post("/api/v1/bookings/",
            json={"slot_id": 1},
            catch_response=True
        ) as resp:
            if resp.status_code == 401:
                resp.success()
            else:
                resp.failure(f"Expected 401, got {resp.status_code}")

    @tag("edge")
    @task
    def cancel_someone_elses_booking(self):
        """Unknown or foreign bookings look the same."""
        with self.client.delete("/api/v1/bookings/999999",
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings/{id}",
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")
