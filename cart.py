"""
Session cart

The cart is a list of {"product_id", "quantity"} lines kept in the customer's
session. It is scratch state: nothing here touches the database except reads
through the catalog. Stock checks made while adding are advisory, checkout
re-validates everything.
"""
import logging
from typing import Any, Dict, List, MutableMapping

from catalog import CatalogReader, available_stock, primary_image
from errors import InsufficientStockError, ValidationError
from pricing import cart_totals, round3

logger = logging.getLogger(__name__)

SESSION_KEY = "cart"
PLACEHOLDER_NAME = "Product"
PLACEHOLDER_IMAGE = "/images/default-product.jpg"
# keeps the signed session cookie under the ~4 KB browser limit
MAX_CART_LINES = 20


def clamp_quantity(quantity: Any) -> int:
    try:
        qty = int(float(quantity))
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(1, qty)


def remaining_stock(available: int, reserved: int) -> int:
    return max(0, available - reserved)


def check_reservation(available: int, reserved: int, quantity: int) -> int:
    """Admission check for adding `quantity` on top of what the cart already holds.

    Returns the remaining count before the add, raises InsufficientStockError
    with that count when the request does not fit.
    """
    remaining = remaining_stock(available, reserved)
    if quantity > remaining:
        raise InsufficientStockError(remaining)
    return remaining


def normalize_lines(raw: Any) -> List[Dict[str, Any]]:
    """Drop malformed entries and merge duplicate product ids."""
    lines: List[Dict[str, Any]] = []
    index: Dict[str, Dict[str, Any]] = {}
    if not isinstance(raw, list):
        return lines
    for item in raw:
        if not isinstance(item, dict) or not item.get("product_id"):
            continue
        pid = str(item["product_id"]).strip()
        qty = item.get("quantity")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            continue
        if pid in index:
            index[pid]["quantity"] += qty
        else:
            index[pid] = {"product_id": pid, "quantity": qty}
            lines.append(index[pid])
    return lines


class SessionCart:
    def __init__(self, session: MutableMapping[str, Any]):
        self.session = session

    @property
    def lines(self) -> List[Dict[str, Any]]:
        return normalize_lines(self.session.get(SESSION_KEY))

    def _save(self, lines: List[Dict[str, Any]]) -> None:
        self.session[SESSION_KEY] = lines

    def is_empty(self) -> bool:
        return not self.lines

    def count(self) -> int:
        return sum(line["quantity"] for line in self.lines)

    def reserved(self, product_id: str) -> int:
        for line in self.lines:
            if line["product_id"] == product_id:
                return line["quantity"]
        return 0

    def add(self, catalog: CatalogReader, product_id: Any, quantity: Any = 1) -> int:
        """Add quantity of a product, returning the new total item count."""
        pid = str(product_id or "").strip()
        if not pid:
            raise ValidationError("product_id required")
        qty = clamp_quantity(quantity)
        product = catalog.get_purchasable_product(pid)
        pid = str(product["_id"])

        lines = self.lines
        check_reservation(available_stock(product), self.reserved(pid), qty)

        for line in lines:
            if line["product_id"] == pid:
                line["quantity"] += qty
                break
        else:
            if len(lines) >= MAX_CART_LINES:
                raise ValidationError(f"Cart can hold at most {MAX_CART_LINES} different products")
            lines.append({"product_id": pid, "quantity": qty})
        self._save(lines)
        return sum(line["quantity"] for line in lines)

    def remove(self, product_id: Any) -> None:
        pid = str(product_id or "").strip()
        self._save([line for line in self.lines if line["product_id"] != pid])

    def clear(self) -> None:
        self._save([])

    def view(self, catalog: CatalogReader) -> Dict[str, Any]:
        lines = self.lines
        products = catalog.find_products([line["product_id"] for line in lines])
        items = []
        for line in lines:
            p = products.get(line["product_id"])
            unit_price = (p or {}).get("campaign_price") or 0
            image = primary_image(p) if p else None
            items.append({
                "product_id": line["product_id"],
                "quantity": line["quantity"],
                "name": (p or {}).get("name") or PLACEHOLDER_NAME,
                "image": (image or {}).get("url") or PLACEHOLDER_IMAGE,
                "unit_price": round3(unit_price),
                "line_total": round3(unit_price * line["quantity"]),
            })
        totals = cart_totals(i["line_total"] for i in items)
        return {"items": items, **totals}
