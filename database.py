"""
Database helpers

MongoDB connection for the campaign storefront.
`db` is None when DATABASE_URL / DATABASE_NAME are not configured.
"""
import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

db: Optional[Database] = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set, database disabled")


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: Any) -> Optional[ObjectId]:
    """Parse an id string into an ObjectId, None when it is malformed."""
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(str(id_str).strip())
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    for k, v in list(doc.items()):
        if isinstance(v, ObjectId):
            doc[k] = str(v)
        elif isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert a document with created_at/updated_at stamps and return its id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    doc["created_at"] = now_utc()
    doc["updated_at"] = now_utc()
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)
