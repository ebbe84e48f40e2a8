"""
Guide directory: profile creation, lookup, search and rating.
"""
import logging
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import ensure_self
from database import clean, collection, create_document, find_document, get_documents, utcnow
from errors import DuplicateError, NotFoundError, UnexpectedError, ValidationError
from schemas import GuideProfileCreate, GuideProfileUpdate, Identity

logger = logging.getLogger(__name__)

RATING_RETRIES = 5


def create_profile(identity: Identity, data: GuideProfileCreate) -> Dict[str, Any]:
    """Publish the calling guide's profile; its id is the guide's account id."""
    if find_document("guide", {"id": identity.id}):
        raise DuplicateError("Guide profile already exists")

    doc = data.model_dump()
    doc.update({"id": identity.id, "rating": 0.0, "total_tours": 0, "request_count": 0})
    try:
        create_document("guide", doc)
    except DuplicateKeyError:
        raise DuplicateError("Guide profile already exists")

    collection("guide_account").update_one(
        {"id": identity.id}, {"$set": {"has_profile": True, "updated_at": utcnow()}}
    )
    logger.info("Guide profile created for %s in %s", identity.id, data.city)
    return get_profile(identity.id)


def get_profile(guide_id: str) -> Dict[str, Any]:
    doc = find_document("guide", {"id": guide_id})
    if not doc:
        raise NotFoundError("Guide not found")
    return doc


def list_profiles(city: Optional[str] = None) -> List[Dict[str, Any]]:
    return get_documents("guide", {"city": city} if city else {})


def update_profile(identity: Identity, guide_id: str, data: GuideProfileUpdate) -> Dict[str, Any]:
    ensure_self(identity, guide_id, "Not authorized to update this profile")
    fields = {k: v for k, v in data.model_dump().items() if v is not None}
    fields["updated_at"] = utcnow()
    doc = collection("guide").find_one_and_update(
        {"id": guide_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
    )
    if not doc:
        raise NotFoundError("Guide not found")
    return clean(doc)


def search(
    city: Optional[str] = None,
    languages: Optional[List[str]] = None,
    min_rating: Optional[float] = None,
    max_price: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """All profiles matching every supplied filter; languages match any-of."""
    filt: Dict[str, Any] = {}
    if city:
        filt["city"] = city
    if languages:
        filt["languages"] = {"$in": languages}
    if min_rating is not None:
        filt["rating"] = {"$gte": min_rating}
    if max_price is not None:
        filt["hourly_rate"] = {"$lte": max_price}
    return get_documents("guide", filt)


def record_rating(guide_id: str, rating: float) -> Dict[str, Any]:
    """
    Fold one tour rating into the running average and bump total_tours.

    The write only lands if total_tours is still the value the average was
    computed from; otherwise the read is repeated.
    """
    if rating < 0 or rating > 5:
        raise ValidationError("Rating must be between 0 and 5")

    for _ in range(RATING_RETRIES):
        doc = get_profile(guide_id)
        total = int(doc.get("total_tours", 0))
        current = float(doc.get("rating", 0))
        updated = (current * total + rating) / (total + 1)
        res = collection("guide").find_one_and_update(
            {"id": guide_id, "total_tours": total},
            {"$set": {"rating": updated, "updated_at": utcnow()}, "$inc": {"total_tours": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if res:
            return clean(res)
        logger.debug("Rating update for %s raced, retrying", guide_id)
    raise UnexpectedError("Could not record rating, please retry")


def increment_request_count(guide_id: str) -> bool:
    res = collection("guide").update_one({"id": guide_id}, {"$inc": {"request_count": 1}})
    return res.matched_count > 0
