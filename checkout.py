"""
Checkout

Turns a cart into a simulated payment. Every read and validation happens
before the first write, so a rejected checkout has no side effects.

The writes that follow are independent documents with no transaction around
them: each product's stock, then the customer ledger. Stock is taken with a
guarded update that only matches while the product still has enough units,
so two checkouts racing for the last unit cannot both win. When a guarded
update loses such a race, stock taken for earlier lines of the same checkout
is handed back and the checkout fails with InsufficientStockError. A store
failure (PyMongoError) is not undone: earlier lines stay decremented and the
caller gets TransientStoreError.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pymongo.database import Database
from pymongo.errors import PyMongoError

from cart import SessionCart, normalize_lines
from catalog import CatalogReader, Inventory, inventory_of
from errors import InsufficientStockError, TransientStoreError, ValidationError
from ledger import record_purchase, validate_contact
from pricing import DEFAULT_DELIVERY_DAYS, SHIPPING_RATE, round3
from schemas import CustomerInfo

logger = logging.getLogger(__name__)

# guarded write attempts per line: the first, plus one retry on fresh data
STOCK_WRITE_ATTEMPTS = 2


@dataclass
class CheckoutResult:
    payment_id: str
    amount: float
    delivery_days: Union[int, float]
    subtotal: float = 0.0
    shipping: float = 0.0

    @property
    def message(self) -> str:
        return f"Payment completed successfully! Order will be delivered in {self.delivery_days:g} days."

    def as_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "payment_id": self.payment_id,
            "amount": self.amount,
            "delivery_days": self.delivery_days,
        }


def _estimated_days(product: Dict[str, Any]) -> Union[int, float]:
    est = (product.get("delivery_info") or {}).get("estimated_days")
    if isinstance(est, bool) or not isinstance(est, (int, float)) or est != est:
        return 0
    return est


def take_stock(db: Database, product: Dict[str, Any], qty: int) -> Inventory:
    """Apply a purchase of qty units with a guarded update.

    On a miss the product is re-read once; if it still has room the write is
    retried, otherwise InsufficientStockError reports what is left now.
    """
    inventory = inventory_of(product)
    for attempt in range(STOCK_WRITE_ATTEMPTS):
        guard, update = inventory.purchase_guard(qty)
        result = db["product"].update_one({"_id": product["_id"], **guard}, update)
        if result.matched_count:
            return inventory
        fresh = db["product"].find_one({"_id": product["_id"]})
        inventory = inventory_of(fresh or {})
        logger.warning(
            "stock conflict on product %s (attempt %d): %d available, %d wanted",
            product["_id"], attempt + 1, inventory.available, qty,
        )
        if fresh is None or inventory.available < qty:
            break
    raise InsufficientStockError(inventory.available, "Insufficient stock for some items")


def release_stock(db: Database, taken: List[Tuple[Dict[str, Any], Inventory, int]]) -> None:
    for product, inventory, qty in reversed(taken):
        logger.warning("releasing %d units of product %s", qty, product["_id"])
        db["product"].update_one({"_id": product["_id"]}, inventory.release(qty))


def checkout(
    db: Database,
    cart: SessionCart,
    customer_info: CustomerInfo,
    lines: Optional[List[Dict[str, Any]]] = None,
) -> CheckoutResult:
    """Validate the cart against live stock, take payment, update stock and ledger.

    ``lines`` overrides the session cart when given and non-empty. The session
    cart is cleared on success.
    """
    lines = normalize_lines(lines) or cart.lines
    if not lines:
        raise ValidationError("Cart is empty")
    contact = validate_contact(customer_info.name, customer_info.email, customer_info.phone)

    catalog = CatalogReader(db)
    planned = []
    subtotal = 0.0
    max_days = 0
    for line in lines:
        product = catalog.get_purchasable_product(line["product_id"])
        available = inventory_of(product).available
        if available < line["quantity"]:
            logger.info("checkout rejected: product %s has %d, cart wants %d",
                        product["_id"], available, line["quantity"])
            raise InsufficientStockError(available, "Insufficient stock for some items")
        subtotal += (product.get("campaign_price") or 0) * line["quantity"]
        max_days = max(max_days, _estimated_days(product))
        planned.append((product, line["quantity"]))

    subtotal = round3(subtotal)
    shipping = round3(subtotal * SHIPPING_RATE)
    grand_total = round3(subtotal + shipping)

    # simulated gateway: payment always succeeds
    payment_id = str(ObjectId())

    taken: List[Tuple[Dict[str, Any], Inventory, int]] = []
    try:
        for product, qty in planned:
            taken.append((product, take_stock(db, product, qty), qty))
        record_purchase(db, contact, sum(qty for _, qty in planned), grand_total)
    except InsufficientStockError:
        try:
            release_stock(db, taken)
        except PyMongoError as exc:
            logger.exception("checkout %s: could not release stock", payment_id)
            raise TransientStoreError("Checkout failed") from exc
        raise
    except PyMongoError as exc:
        logger.exception("checkout %s failed after %d stock writes", payment_id, len(taken))
        raise TransientStoreError("Checkout failed") from exc

    cart.clear()
    result = CheckoutResult(
        payment_id=payment_id,
        amount=grand_total,
        delivery_days=max_days or DEFAULT_DELIVERY_DAYS,
        subtotal=subtotal,
        shipping=shipping,
    )
    logger.info("checkout %s: %d lines, amount %s, customer %s",
                payment_id, len(planned), grand_total, contact.email)
    return result
