"""
Catalog reader

Read-only access to products and campaigns, plus the two inventory
accounting styles a product can carry:

* counter form, ``stock_quantity`` decremented on purchase
* target/sold form, ``target_quantity`` and ``sold_quantity`` where the
  available stock is ``target - sold``

The form is picked by field presence.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from pymongo.database import Database

from database import oid, serialize_doc
from errors import NotFoundError, UnavailableError

logger = logging.getLogger(__name__)

ACTIVE = "active"


@dataclass(frozen=True)
class CounterStock:
    quantity: int

    @property
    def available(self) -> int:
        return max(0, self.quantity)

    def purchase_guard(self, qty: int) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Filter/update pair that takes qty units only if the counter stays >= 0."""
        return {"stock_quantity": {"$gte": qty}}, {"$inc": {"stock_quantity": -qty}}

    def release(self, qty: int) -> Dict[str, Any]:
        return {"$inc": {"stock_quantity": qty}}


@dataclass(frozen=True)
class TargetSoldStock:
    target: int
    sold: int

    @property
    def available(self) -> int:
        return max(0, self.target - self.sold)

    def purchase_guard(self, qty: int) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Bounds check against the observed target so sold never passes it.

        Other sales in between do not make the write miss while sold + qty
        still fits under target.
        """
        return (
            {"target_quantity": self.target, "sold_quantity": {"$lte": self.target - qty}},
            {"$inc": {"sold_quantity": qty}},
        )

    def release(self, qty: int) -> Dict[str, Any]:
        return {"$inc": {"sold_quantity": -qty}}


Inventory = Union[CounterStock, TargetSoldStock]


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def inventory_of(product: Dict[str, Any]) -> Inventory:
    if product.get("target_quantity") is not None and product.get("sold_quantity") is not None:
        return TargetSoldStock(_as_int(product["target_quantity"]), _as_int(product["sold_quantity"]))
    return CounterStock(_as_int(product.get("stock_quantity")))


def available_stock(product: Dict[str, Any]) -> int:
    return inventory_of(product).available


def primary_image(product: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    images = [i for i in (product.get("images") or []) if i]
    for image in images:
        if image.get("is_primary") and image.get("url"):
            return image
    return images[0] if images else None


def product_view(product: Dict[str, Any]) -> Dict[str, Any]:
    """Normalized product shape returned to the storefront."""
    image = primary_image(product)
    return {
        "id": str(product["_id"]),
        "name": product.get("name"),
        "description": product.get("description"),
        "campaign_id": str(product["campaign_id"]) if product.get("campaign_id") else None,
        "brand_id": str(product["brand_id"]) if product.get("brand_id") else None,
        "images": product.get("images") or [],
        "primary_image_url": image.get("url") if image else None,
        "original_price": product.get("original_price"),
        "campaign_price": product.get("campaign_price"),
        "discount_percentage": product.get("discount_percentage") or 0,
        "category": product.get("category"),
        "available_stock": available_stock(product),
        "is_digital": bool(product.get("is_digital")),
        "delivery_info": product.get("delivery_info") or {},
    }


class CatalogReader:
    def __init__(self, db: Database):
        self.db = db

    def find_product(self, product_id: Any) -> Optional[Dict[str, Any]]:
        _id = oid(product_id)
        if _id is None:
            return None
        return self.db["product"].find_one({"_id": _id})

    def find_products(self, product_ids: List[Any]) -> Dict[str, Dict[str, Any]]:
        ids = [i for i in (oid(p) for p in product_ids) if i is not None]
        if not ids:
            return {}
        return {str(p["_id"]): p for p in self.db["product"].find({"_id": {"$in": ids}})}

    def find_campaign(self, campaign_id: Any) -> Optional[Dict[str, Any]]:
        _id = oid(campaign_id)
        if _id is None:
            return None
        return self.db["campaign"].find_one({"_id": _id})

    def get_purchasable_product(self, product_id: Any) -> Dict[str, Any]:
        """Product whose own status and campaign status are both active.

        Raises NotFoundError when the product or its campaign is missing,
        UnavailableError when either is not active.
        """
        product = self.find_product(product_id)
        if not product:
            raise NotFoundError("Product not found")
        campaign = self.find_campaign(product.get("campaign_id"))
        if not campaign:
            raise NotFoundError("Campaign not found")
        if product.get("status", ACTIVE) != ACTIVE:
            raise UnavailableError("Product is not available")
        if campaign.get("status") != ACTIVE:
            raise UnavailableError("Campaign is not active")
        return product

    def product_details(self, product_id: Any) -> Dict[str, Any]:
        return product_view(self.get_purchasable_product(product_id))

    def active_campaigns(self, limit: int = 50) -> List[Dict[str, Any]]:
        cur = self.db["campaign"].find({"status": ACTIVE}).sort("created_at", -1).limit(limit)
        return [serialize_doc(c) for c in cur]

    def campaign_shop(self, campaign_id: Any) -> Dict[str, Any]:
        campaign = self.find_campaign(campaign_id)
        if not campaign:
            raise NotFoundError("Campaign not found")
        if campaign.get("status") != ACTIVE:
            raise UnavailableError("Campaign is not active")
        products = self.db["product"].find({"campaign_id": {"$in": [campaign["_id"], str(campaign["_id"])]}, "status": ACTIVE})
        views = [product_view(p) for p in products]
        logger.debug("campaign %s shop: %d active products", campaign["_id"], len(views))
        return {"campaign": serialize_doc(campaign), "products": views}
