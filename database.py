"""
MongoDB access helpers.

Every collection stores documents keyed by a string ``id`` field; Mongo's own
``_id`` never leaves this module.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient

import config
from errors import UnexpectedError

logger = logging.getLogger(__name__)

db = None
if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]

# collection name -> fields carrying a unique index
UNIQUE_FIELDS = {
    "guide_account": ["id", "email"],
    "tourist_account": ["id", "email"],
    "guide": ["id"],
    "booking": ["id"],
}


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back from reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def collection(name: str):
    if db is None:
        raise UnexpectedError("Database not configured")
    return db[name]


def ensure_indexes() -> None:
    if db is None:
        logger.warning("Database not configured, skipping index creation")
        return
    for name, fields in UNIQUE_FIELDS.items():
        for field in fields:
            db[name].create_index([(field, ASCENDING)], unique=True)
    db["booking"].create_index([("guide_id", ASCENDING)])
    db["booking"].create_index([("tourist_id", ASCENDING)])


def collection_status() -> Dict[str, Dict[str, Any]]:
    """Document count and unique-index coverage for each marketplace collection."""
    status = {}
    for name, fields in UNIQUE_FIELDS.items():
        coll = collection(name)
        unique = {info["key"][0][0] for info in coll.index_information().values() if info.get("unique")}
        status[name] = {
            "documents": coll.count_documents({}),
            "unique_indexes": sorted(unique & set(fields)),
            "indexes_ready": set(fields) <= unique,
        }
    return status


def clean(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if doc is None:
        return None
    doc = dict(doc)
    doc.pop("_id", None)
    return doc


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], id_prefix: Optional[str] = None) -> str:
    """Insert a document, stamping timestamps and an id when missing. Returns the id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("id", new_id(id_prefix or collection_name))
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    collection(collection_name).insert_one(data_dict)
    return data_dict["id"]


def find_document(collection_name: str, filter_dict: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return clean(collection(collection_name).find_one(filter_dict))


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return [clean(doc) for doc in cursor]
