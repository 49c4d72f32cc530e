"""
Tests for availability and host block endpoints

Tests cover:
- Calendar window: booked/blocked ranges, prep-buffered disabled dates
- Window defaults and invalid windows
- Pre-booking check verdicts
- Host block create/list/delete with ownership and overlap rules
"""

import pytest
from datetime import date

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import auth_headers, make_listing, make_booking, make_block
from shortlet.models.block import ShortletBlock


class TestAvailabilityEndpoint:
    """GET /api/shortlet/availability"""

    def test_calendar_window(self, client, db_session):
        listing = make_listing(db_session, prep_days=1)
        booking = make_booking(db_session, listing, status="confirmed", check_in=date(2027, 3, 10), check_out=date(2027, 3, 13))
        make_booking(db_session, listing, status="pending_payment", check_in=date(2027, 3, 15), check_out=date(2027, 3, 17))
        make_block(db_session, listing, date(2027, 3, 20), date(2027, 3, 22), reason="Maintenance: plumbing")

        response = client.get(
            "/api/shortlet/availability",
            params={"listingId": listing.id, "from": "2027-03-01", "to": "2027-03-31"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["listingId"] == listing.id
        assert body["from"] == "2027-03-01"
        assert body["to"] == "2027-03-31"
        assert body["bookedRanges"] == [{
            "start": "2027-03-10",
            "end": "2027-03-13",
            "source": "booking",
            "bookingId": booking.id,
        }]
        assert body["blockedRanges"][0]["source"] == "maintenance"
        assert body["disabledDates"] == [
            "2027-03-10", "2027-03-11", "2027-03-12", "2027-03-13",
            "2027-03-20", "2027-03-21",
        ]
        assert body["policy"] == {"minNights": 1, "maxNights": None, "prepDays": 1, "bookingMode": "request"}

    def test_prep_buffer_spills_into_window(self, client, db_session):
        listing = make_listing(db_session, prep_days=2)
        make_booking(db_session, listing, status="confirmed", check_in=date(2027, 2, 25), check_out=date(2027, 3, 1))

        response = client.get(
            "/api/shortlet/availability",
            params={"listingId": listing.id, "from": "2027-03-01", "to": "2027-03-10"},
        )

        assert response.json()["disabledDates"] == ["2027-03-01", "2027-03-02"]

    def test_malformed_bounds_fall_back(self, client, db_session):
        listing = make_listing(db_session)

        response = client.get(
            "/api/shortlet/availability",
            params={"listingId": listing.id, "from": "2027-02-30", "to": "soon"},
        )

        assert response.status_code == 200
        assert response.json()["from"] < response.json()["to"]

    def test_default_window_at_end_of_calendar(self, client, db_session):
        listing = make_listing(db_session, prep_days=3)
        make_booking(db_session, listing, status="confirmed", check_in=date(9999, 12, 20), check_out=date(9999, 12, 22))

        response = client.get(
            "/api/shortlet/availability",
            params={"listingId": listing.id, "from": "9999-12-20"},
        )

        assert response.status_code == 200
        assert response.json()["to"] == "9999-12-31"
        assert response.json()["disabledDates"] == [
            "9999-12-20", "9999-12-21", "9999-12-22", "9999-12-23", "9999-12-24",
        ]

    def test_inverted_window(self, client, db_session):
        listing = make_listing(db_session)

        response = client.get(
            "/api/shortlet/availability",
            params={"listingId": listing.id, "from": "2027-03-10", "to": "2027-03-01"},
        )

        assert response.status_code == 400

    def test_unknown_listing(self, client):
        response = client.get("/api/shortlet/availability", params={"listingId": "missing"})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "listing_not_found"


class TestAvailabilityCheck:
    """POST /api/shortlet/availability/check"""

    def test_conflict_reported(self, client, db_session):
        listing = make_listing(db_session)
        make_booking(db_session, listing, status="pending", check_in=date(2027, 3, 10), check_out=date(2027, 3, 13))

        response = client.post("/api/shortlet/availability/check", json={
            "listingId": listing.id,
            "checkIn": "2027-03-08",
            "checkOut": "2027-03-11",
        })

        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["reason"] == "includes_unavailable_night"
        assert body["conflictingDates"] == ["2027-03-10"]
        assert body["suggestedCheckOut"] == "2027-03-09"

    def test_valid_range(self, client, db_session):
        listing = make_listing(db_session)

        body = client.post("/api/shortlet/availability/check", json={
            "listingId": listing.id,
            "checkIn": "2027-03-08",
            "checkOut": "2027-03-11",
        }).json()

        assert body["valid"] is True
        assert body["nights"] == 3
        assert body["conflictingDates"] == []

    def test_stay_at_end_of_calendar(self, client, db_session):
        listing = make_listing(db_session, min_nights=3)

        response = client.post("/api/shortlet/availability/check", json={
            "listingId": listing.id,
            "checkIn": "9999-12-29",
            "checkOut": "9999-12-31",
        })

        body = response.json()
        assert response.status_code == 200
        assert body["valid"] is False
        assert body["reason"] == "min_nights"
        assert body["suggestedCheckOut"] is None


class TestHostBlocks:
    """/api/shortlet/blocks"""

    def test_create_list_delete(self, client, db_session, settings):
        listing = make_listing(db_session)
        headers = auth_headers(settings, "host-1", "landlord")

        created = client.post("/api/shortlet/blocks", headers=headers, json={
            "listing_id": listing.id,
            "date_from": "2027-04-01",
            "date_to": "2027-04-04",
            "reason": "  Family visiting ",
        })
        assert created.status_code == 201
        block = created.json()
        assert block["reason"] == "Family visiting"
        assert block["source"] == "host_block"

        listed = client.get("/api/shortlet/blocks", headers=headers, params={"listingId": listing.id})
        assert [row["id"] for row in listed.json()] == [block["id"]]

        deleted = client.delete(f"/api/shortlet/blocks/{block['id']}", headers=headers)
        assert deleted.status_code == 200
        assert db_session.query(ShortletBlock).count() == 0

    def test_overlapping_booking_conflict(self, client, db_session, settings):
        listing = make_listing(db_session)
        make_booking(db_session, listing, status="confirmed", check_in=date(2027, 4, 2), check_out=date(2027, 4, 5))

        response = client.post("/api/shortlet/blocks", headers=auth_headers(settings, "host-1", "host"), json={
            "listing_id": listing.id,
            "date_from": "2027-04-01",
            "date_to": "2027-04-03",
        })

        assert response.status_code == 409
        assert db_session.query(ShortletBlock).count() == 0

    def test_block_may_start_on_checkout_day(self, client, db_session, settings):
        listing = make_listing(db_session)
        make_booking(db_session, listing, status="confirmed", check_in=date(2027, 4, 2), check_out=date(2027, 4, 5))

        response = client.post("/api/shortlet/blocks", headers=auth_headers(settings, "host-1", "landlord"), json={
            "listing_id": listing.id,
            "date_from": "2027-04-05",
            "date_to": "2027-04-06",
        })

        assert response.status_code == 201

    @pytest.mark.parametrize("date_from,date_to", [
        ("2027-04-03", "2027-04-03"),
        ("2027-04-03", "2027-04-01"),
        ("2027-02-30", "2027-03-02"),
        ("2027-4-1", "2027-04-02"),
    ])
    def test_invalid_ranges_rejected(self, client, db_session, settings, date_from, date_to):
        listing = make_listing(db_session)

        response = client.post("/api/shortlet/blocks", headers=auth_headers(settings, "host-1", "landlord"), json={
            "listing_id": listing.id,
            "date_from": date_from,
            "date_to": date_to,
        })

        assert response.status_code == 422

    def test_other_host_forbidden(self, client, db_session, settings):
        listing = make_listing(db_session)

        response = client.post("/api/shortlet/blocks", headers=auth_headers(settings, "host-2", "landlord"), json={
            "listing_id": listing.id,
            "date_from": "2027-04-01",
            "date_to": "2027-04-02",
        })

        assert response.status_code == 403

    def test_admin_allowed(self, client, db_session, settings):
        listing = make_listing(db_session)

        response = client.post("/api/shortlet/blocks", headers=auth_headers(settings, "ops-1", "admin"), json={
            "listing_id": listing.id,
            "date_from": "2027-04-01",
            "date_to": "2027-04-02",
        })

        assert response.status_code == 201

    def test_tenant_forbidden(self, client, db_session, settings):
        listing = make_listing(db_session)

        response = client.get(
            "/api/shortlet/blocks",
            headers=auth_headers(settings, "guest-1", "tenant"),
            params={"listingId": listing.id},
        )

        assert response.status_code == 403

    def test_anonymous_unauthorized(self, client, db_session):
        listing = make_listing(db_session)

        response = client.get("/api/shortlet/blocks", params={"listingId": listing.id})

        assert response.status_code == 401
