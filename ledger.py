"""
Customer ledger

One document per customer email holding lifetime purchase totals. Contact
fields are overwritten on every checkout, totals only ever grow.
"""
import logging
from typing import Any, Dict, Optional

import pydantic
from pymongo import ReturnDocument
from pymongo.database import Database

from database import now_utc, serialize_doc
from errors import NotFoundError, ValidationError
from schemas import Customer

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_contact(name: Optional[str], email: Optional[str], phone: Optional[str] = None) -> Customer:
    """Trimmed, lower-cased contact details, or ValidationError."""
    name = (name or "").strip()
    email = normalize_email(email)
    phone = (phone or "").strip() or None
    if not name or not email:
        raise ValidationError("Customer name and email are required")
    try:
        return Customer(name=name, email=email, phone=phone)
    except pydantic.ValidationError as exc:
        field = exc.errors()[0]["loc"][0]
        if field == "email":
            raise ValidationError("Please enter a valid email address") from exc
        raise ValidationError(f"Invalid customer {field}") from exc


def record_purchase(db: Database, contact: Customer, items: int, amount: float) -> Dict[str, Any]:
    """Upsert the customer by email and add this checkout to their totals."""
    update: Dict[str, Any] = {
        "$set": {"name": contact.name, "last_purchase_date": now_utc(), "updated_at": now_utc()},
        "$inc": {"total_purchases": items, "total_spent": amount},
        "$setOnInsert": {"created_at": now_utc()},
    }
    if contact.phone:
        update["$set"]["phone"] = contact.phone
    doc = db["customer"].find_one_and_update(
        {"email": normalize_email(contact.email)},
        update,
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.debug("ledger %s: +%d items, +%s spent", contact.email, items, amount)
    return doc


def get_customer(db: Database, email: str) -> Dict[str, Any]:
    doc = db["customer"].find_one({"email": normalize_email(email)})
    if not doc:
        raise NotFoundError("Customer not found")
    return serialize_doc(doc)
