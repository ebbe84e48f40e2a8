from datetime import datetime, timedelta, timezone

import pytest

import bookings
import database
import guides
from errors import AuthorizationError, NotFoundError, ValidationError
from schemas import BookingCreate

START = datetime(2024, 1, 1, 9, 0)
END = datetime(2024, 1, 1, 13, 0)


def _book(tourist, guide_id, start=START, end=END, party_size=2, **extra):
    return bookings.create_booking(tourist, BookingCreate(
        guide_id=guide_id, start_date=start, end_date=end, party_size=party_size, **extra
    ))


@pytest.mark.parametrize("rate,minutes,party,expected", [
    (1000, 240, 2, 8000),
    (500, 90, 1, 1000),
    (250, 1, 3, 750),
    (120, 0, 4, 0),
    (0, 600, 5, 0),
])
def test_total_cost(rate, minutes, party, expected):
    end = START + timedelta(minutes=minutes)
    assert bookings.compute_total_cost(rate, START, end, party) == expected


def test_end_before_start_rejected():
    with pytest.raises(ValidationError):
        bookings.billable_hours(END, START)


def test_timezone_aware_dates_are_normalized():
    start = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=5, minutes=30)))
    end = datetime(2024, 1, 1, 5, 30, tzinfo=timezone.utc)
    assert bookings.billable_hours(start, end) == 2


def test_create_booking_scenario(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist

    booking = _book(tourist_identity, guide_identity.id, notes="Old Delhi food walk", itinerary_id="itin_42")
    assert booking["total_cost"] == 8000
    assert booking["status"] == "pending"
    assert booking["tourist_id"] == tourist_identity.id
    assert booking["tourist_name"] == "Maya Iyer"
    assert guides.get_profile(guide_identity.id)["request_count"] == 1


def test_create_then_fetch_round_trip(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    created = _book(tourist_identity, guide_identity.id, notes="Sunrise at the fort")
    fetched = bookings.get_booking(tourist_identity, created["id"])

    for key in ("id", "created_at", "updated_at"):
        created.pop(key)
        fetched.pop(key)
    assert fetched == created
    assert fetched["start_date"] == START
    assert fetched["end_date"] == END


def test_total_cost_fixed_at_creation(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    database.db["guide"].update_one({"id": guide_identity.id}, {"$set": {"hourly_rate": 5000}})
    assert bookings.get_booking(tourist_identity, booking["id"])["total_cost"] == 8000


def test_create_rejects_bad_input(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    with pytest.raises(ValidationError):
        _book(tourist_identity, guide_identity.id, start=END, end=START)
    with pytest.raises(NotFoundError):
        _book(tourist_identity, "guide_missing")
    assert database.db["booking"].count_documents({}) == 0


def test_cannot_book_for_someone_else(guide, make_tourist):
    guide_identity, _ = guide
    alice, _ = make_tourist()
    bob, _ = make_tourist()
    with pytest.raises(AuthorizationError):
        _book(alice, guide_identity.id, tourist_id=bob.id)
    with pytest.raises(AuthorizationError):
        bookings.create_booking(guide_identity, BookingCreate(
            guide_id=guide_identity.id, start_date=START, end_date=END, party_size=1
        ))


def test_get_booking_restricted_to_parties(guide, make_guide, tourist, make_tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)

    assert bookings.get_booking(guide_identity, booking["id"])["id"] == booking["id"]
    stranger, _ = make_tourist()
    other_guide, _ = make_guide()
    for caller in (stranger, other_guide):
        with pytest.raises(AuthorizationError):
            bookings.get_booking(caller, booking["id"])
    with pytest.raises(NotFoundError):
        bookings.get_booking(tourist_identity, "booking_missing")


def test_only_the_guide_accepts(guide, make_guide, tourist, make_tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    other_guide, _ = make_guide()
    stranger, _ = make_tourist()

    for caller in (tourist_identity, other_guide, stranger):
        with pytest.raises(AuthorizationError):
            bookings.set_status(caller, booking["id"], "accepted")

    accepted = bookings.set_status(guide_identity, booking["id"], "accepted")
    assert accepted["status"] == "accepted"
    assert accepted["updated_at"] >= booking["updated_at"]


def test_full_lifecycle_to_completed(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)

    with pytest.raises(ValidationError):
        bookings.set_status(guide_identity, booking["id"], "completed")
    bookings.set_status(guide_identity, booking["id"], "accepted")
    with pytest.raises(ValidationError):
        bookings.cancel_booking(tourist_identity, booking["id"])
    done = bookings.set_status(guide_identity, booking["id"], "completed")
    assert done["status"] == "completed"


@pytest.mark.parametrize("path", [
    [("guide", "rejected")],
    [("tourist", "cancelled")],
    [("guide", "accepted"), ("guide", "completed")],
])
def test_terminal_states_are_final(guide, tourist, path):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    callers = {"guide": guide_identity, "tourist": tourist_identity}
    booking = _book(tourist_identity, guide_identity.id)
    for role, status in path:
        bookings.set_status(callers[role], booking["id"], status)

    for caller in callers.values():
        for status in ("pending", "accepted", "rejected", "completed", "cancelled"):
            with pytest.raises(ValidationError):
                bookings.set_status(caller, booking["id"], status)


def test_unknown_status_rejected(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    with pytest.raises(ValidationError):
        bookings.set_status(guide_identity, booking["id"], "confirmed")
    with pytest.raises(NotFoundError):
        bookings.set_status(guide_identity, "booking_missing", "accepted")


def test_cancel_pending_by_tourist_only(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    with pytest.raises(AuthorizationError):
        bookings.cancel_booking(guide_identity, booking["id"])
    assert bookings.cancel_booking(tourist_identity, booking["id"])["status"] == "cancelled"


def test_lost_status_race(guide, tourist, monkeypatch):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)

    real_load = bookings._load

    def stale_load(booking_id):
        doc = real_load(booking_id)
        database.db["booking"].update_one({"id": booking_id}, {"$set": {"status": "cancelled"}})
        return doc

    monkeypatch.setattr(bookings, "_load", stale_load)
    with pytest.raises(ValidationError):
        bookings.set_status(guide_identity, booking["id"], "accepted")
    assert database.db["booking"].find_one({"id": booking["id"]})["status"] == "cancelled"


def test_listings_newest_first_with_status_filter(guide, make_tourist):
    guide_identity, _ = guide
    alice, _ = make_tourist(name="Alice")
    bob, _ = make_tourist(name="Bob")
    first = _book(alice, guide_identity.id)
    second = _book(bob, guide_identity.id)
    third = _book(alice, guide_identity.id)
    base = datetime(2024, 1, 1)
    for offset, b in enumerate((first, second, third)):
        database.db["booking"].update_one({"id": b["id"]}, {"$set": {"created_at": base + timedelta(minutes=offset)}})
    bookings.set_status(guide_identity, second["id"], "rejected")

    listed = bookings.list_by_guide(guide_identity, guide_identity.id)
    assert [b["id"] for b in listed] == [third["id"], second["id"], first["id"]]
    assert [b["tourist_name"] for b in listed] == ["Alice", "Bob", "Alice"]

    pending = bookings.list_guide_requests(guide_identity, guide_identity.id, status="pending")
    assert [b["id"] for b in pending] == [third["id"], first["id"]]

    mine = bookings.list_by_tourist(alice, alice.id)
    assert [b["id"] for b in mine] == [third["id"], first["id"]]

    with pytest.raises(ValidationError):
        bookings.list_by_tourist(alice, alice.id, status="archived")
    with pytest.raises(AuthorizationError):
        bookings.list_by_tourist(alice, bob.id)
    with pytest.raises(AuthorizationError):
        bookings.list_by_guide(alice, guide_identity.id)


def test_guide_requests_need_profile(make_guide):
    identity, _ = make_guide(with_profile=False)
    with pytest.raises(NotFoundError):
        bookings.list_guide_requests(identity, identity.id)


def test_respond_to_request(guide, make_guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    other_guide, _ = make_guide()

    with pytest.raises(ValidationError):
        bookings.respond_to_request(guide_identity, guide_identity.id, booking["id"], "completed")
    with pytest.raises(AuthorizationError):
        bookings.respond_to_request(other_guide, guide_identity.id, booking["id"], "accepted")
    with pytest.raises(NotFoundError):
        bookings.respond_to_request(other_guide, other_guide.id, booking["id"], "accepted")

    rejected = bookings.respond_to_request(guide_identity, guide_identity.id, booking["id"], "rejected")
    assert rejected["status"] == "rejected"
    assert rejected["tourist_name"] == "Maya Iyer"


def test_cost_priced_on_stored_precision(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    end = END.replace(microsecond=400)
    booking = _book(tourist_identity, guide_identity.id, end=end, party_size=1)

    stored = database.db["booking"].find_one({"id": booking["id"]})
    assert stored["end_date"] == END
    assert stored["total_cost"] == 1000 * bookings.billable_hours(stored["start_date"], stored["end_date"])
    assert booking["total_cost"] == 4000


def test_dates_truncated_to_milliseconds():
    value = datetime(2024, 1, 1, 13, 0, 0, 123456, tzinfo=timezone.utc)
    assert bookings.to_utc_naive(value) == datetime(2024, 1, 1, 13, 0, 0, 123000)


def test_guide_request_views_reject_tourists(guide, tourist):
    guide_identity, _ = guide
    tourist_identity, _ = tourist
    booking = _book(tourist_identity, guide_identity.id)
    with pytest.raises(AuthorizationError):
        bookings.list_guide_requests(tourist_identity, tourist_identity.id)
    with pytest.raises(AuthorizationError):
        bookings.respond_to_request(tourist_identity, tourist_identity.id, booking["id"], "accepted")
