"""
Booking requests between tourists and guides.

Lifecycle::

    pending --accept (guide)--> accepted --complete (guide)--> completed
    pending --reject (guide)--> rejected
    pending --cancel (tourist)--> cancelled

rejected, cancelled and completed are terminal.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from auth import ensure_self
from database import clean, collection, create_document, find_document, get_documents, utcnow
from errors import AuthorizationError, NotFoundError, ValidationError
from guides import get_profile, increment_request_count
from schemas import BOOKING_STATUSES, BookingCreate, Identity

logger = logging.getLogger(__name__)

# (from, to) -> role allowed to make the move
TRANSITIONS = {
    ("pending", "accepted"): "guide",
    ("pending", "rejected"): "guide",
    ("pending", "cancelled"): "tourist",
    ("accepted", "completed"): "guide",
}
TERMINAL_STATUSES = frozenset({"rejected", "cancelled", "completed"})
GUIDE_RESPONSES = ("accepted", "rejected")


# -------------------- Pricing --------------------
def to_utc_naive(value: datetime) -> datetime:
    """Naive UTC at millisecond precision, the form BSON dates are stored in."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def billable_hours(start: datetime, end: datetime) -> int:
    """Whole hours between start and end, rounded up."""
    start, end = to_utc_naive(start), to_utc_naive(end)
    if end < start:
        raise ValidationError("end_date must not be before start_date")
    return math.ceil((end - start).total_seconds() / 3600)


def compute_total_cost(hourly_rate: float, start: datetime, end: datetime, party_size: int) -> float:
    if party_size < 1:
        raise ValidationError("party_size must be at least 1")
    if hourly_rate < 0:
        raise ValidationError("hourly_rate must not be negative")
    return float(hourly_rate) * billable_hours(start, end) * party_size


# -------------------- Helpers --------------------
def _with_tourist_names(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    ids = list({d["tourist_id"] for d in docs})
    names = {}
    if ids:
        for account in collection("tourist_account").find({"id": {"$in": ids}}, {"id": 1, "full_name": 1}):
            names[account["id"]] = account.get("full_name")
    for d in docs:
        d["tourist_name"] = names.get(d["tourist_id"])
    return docs


def _load(booking_id: str) -> Dict[str, Any]:
    doc = find_document("booking", {"id": booking_id})
    if not doc:
        raise NotFoundError("Booking not found")
    return doc


def _is_party(identity: Identity, doc: Dict[str, Any]) -> bool:
    if identity.role == "guide":
        return identity.id == doc["guide_id"]
    return identity.id == doc["tourist_id"]


def _ensure_party(identity: Identity, doc: Dict[str, Any]) -> None:
    if not _is_party(identity, doc):
        raise AuthorizationError("Not authorized to access this booking")


def _check_status_filter(status: Optional[str]) -> None:
    if status is not None and status not in BOOKING_STATUSES:
        raise ValidationError("Invalid status")


# -------------------- Operations --------------------
def create_booking(identity: Identity, data: BookingCreate) -> Dict[str, Any]:
    if identity.role != "tourist":
        raise AuthorizationError("Tourist account required")
    tourist_id = data.tourist_id or identity.id
    ensure_self(identity, tourist_id, "Cannot book on behalf of another tourist")

    start, end = to_utc_naive(data.start_date), to_utc_naive(data.end_date)
    guide = get_profile(data.guide_id)
    total_cost = compute_total_cost(float(guide.get("hourly_rate", 0)), start, end, data.party_size)

    booking_id = create_document("booking", {
        "guide_id": data.guide_id,
        "tourist_id": tourist_id,
        "start_date": start,
        "end_date": end,
        "party_size": data.party_size,
        "notes": data.notes,
        "itinerary_id": data.itinerary_id,
        "status": "pending",
        "total_cost": total_cost,
    })
    increment_request_count(data.guide_id)
    logger.info("Booking %s created for guide %s (total %.2f)", booking_id, data.guide_id, total_cost)
    return _with_tourist_names([_load(booking_id)])[0]


def get_booking(identity: Identity, booking_id: str) -> Dict[str, Any]:
    doc = _load(booking_id)
    _ensure_party(identity, doc)
    return _with_tourist_names([doc])[0]


def list_by_tourist(identity: Identity, tourist_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    if identity.role != "tourist":
        raise AuthorizationError("Not authorized to access these bookings")
    ensure_self(identity, tourist_id, "Not authorized to access these bookings")
    _check_status_filter(status)
    filt = {"tourist_id": tourist_id}
    if status:
        filt["status"] = status
    return _with_tourist_names(get_documents("booking", filt, sort=[("created_at", DESCENDING)]))


def list_by_guide(identity: Identity, guide_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    if identity.role != "guide":
        raise AuthorizationError("Not authorized to access these requests")
    ensure_self(identity, guide_id, "Not authorized to access these requests")
    _check_status_filter(status)
    filt = {"guide_id": guide_id}
    if status:
        filt["status"] = status
    return _with_tourist_names(get_documents("booking", filt, sort=[("created_at", DESCENDING)]))


def set_status(identity: Identity, booking_id: str, new_status: str) -> Dict[str, Any]:
    doc = _load(booking_id)
    _ensure_party(identity, doc)
    if new_status not in BOOKING_STATUSES:
        raise ValidationError("Invalid status")

    current = doc["status"]
    if current in TERMINAL_STATUSES:
        raise ValidationError(f"Booking is already {current}")
    role = TRANSITIONS.get((current, new_status))
    if role is None:
        raise ValidationError(f"Cannot change status from {current} to {new_status}")
    if identity.role != role:
        raise AuthorizationError(f"Only the {role} can set status to {new_status}")

    updated = collection("booking").find_one_and_update(
        {"id": booking_id, "status": current},
        {"$set": {"status": new_status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValidationError("Booking status changed concurrently, please retry")
    logger.info("Booking %s: %s -> %s by %s", booking_id, current, new_status, identity.id)
    return _with_tourist_names([clean(updated)])[0]


def cancel_booking(identity: Identity, booking_id: str) -> Dict[str, Any]:
    return set_status(identity, booking_id, "cancelled")


# -------------------- Guide-side requests --------------------
def list_guide_requests(identity: Identity, guide_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    if identity.role != "guide":
        raise AuthorizationError("Not authorized to access these requests")
    ensure_self(identity, guide_id, "Not authorized to access these requests")
    get_profile(guide_id)
    return list_by_guide(identity, guide_id, status)


def respond_to_request(identity: Identity, guide_id: str, request_id: str, status: str) -> Dict[str, Any]:
    if identity.role != "guide":
        raise AuthorizationError("Not authorized to update this request")
    ensure_self(identity, guide_id, "Not authorized to update this request")
    if status not in GUIDE_RESPONSES:
        raise ValidationError("Invalid status")
    if not find_document("booking", {"id": request_id, "guide_id": guide_id}):
        raise NotFoundError("Request not found")
    return set_status(identity, request_id, status)
