import os
import sys
import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.middleware.sessions import SessionMiddleware

import database
from cart import SessionCart
from catalog import CatalogReader
from checkout import checkout
from database import create_document, now_utc
from errors import CommerceError
from ledger import get_customer
from schemas import AddToCartBody, Campaign, CheckoutBody, Product, RemoveFromCartBody

log = logging.getLogger("storefront")


def setup_logging():
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
        root.addHandler(handler)


setup_logging()

app = FastAPI(title="Campaign Storefront API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SessionMiddleware, secret_key=os.getenv("SESSION_SECRET", "dev-session-secret"))

ADMIN_KEY = os.getenv("ADMIN_KEY", "demo-admin-key")

# ---------------------- Utilities ----------------------

def get_db() -> Database:
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def get_cart(request: Request) -> SessionCart:
    return SessionCart(request.session)


def require_admin(x_admin_key: Optional[str] = Header(None)):
    if x_admin_key != ADMIN_KEY:
        raise HTTPException(401, "Unauthorized")


@app.exception_handler(CommerceError)
async def commerce_error_handler(request: Request, exc: CommerceError):
    return JSONResponse(status_code=exc.status_code, content=exc.as_payload())

# ---------------------- Root & Health ----------------------

@app.get("/")
def read_root():
    return {"message": "Campaign storefront API running"}

@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                response["collections"] = db.list_collection_names()
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response

# ---------------------- Campaigns & Products ----------------------

@app.get("/campaigns")
def list_campaigns(limit: int = 50, db: Database = Depends(get_db)):
    return CatalogReader(db).active_campaigns(limit)

@app.get("/campaigns/{campaign_id}/shop")
def campaign_shop(campaign_id: str, db: Database = Depends(get_db)):
    return {"success": True, **CatalogReader(db).campaign_shop(campaign_id)}

@app.get("/products/{product_id}")
def product_details(product_id: str, db: Database = Depends(get_db)):
    return {"success": True, "product": CatalogReader(db).product_details(product_id)}

# ---------------------- Cart ----------------------

@app.get("/cart")
def view_cart(cart: SessionCart = Depends(get_cart), db: Database = Depends(get_db)):
    return cart.view(CatalogReader(db))

@app.post("/cart/add")
def add_to_cart(body: AddToCartBody, cart: SessionCart = Depends(get_cart), db: Database = Depends(get_db)):
    count = cart.add(CatalogReader(db), body.product_id, body.quantity)
    return {"success": True, "message": "Added to cart", "cartCount": count}

@app.post("/cart/remove")
def remove_from_cart(body: RemoveFromCartBody, cart: SessionCart = Depends(get_cart)):
    cart.remove(body.product_id)
    return {"success": True, "message": "Removed from cart"}

# ---------------------- Checkout & Customers ----------------------

@app.post("/checkout")
def checkout_cart(body: CheckoutBody, cart: SessionCart = Depends(get_cart), db: Database = Depends(get_db)):
    lines = [line.model_dump() for line in body.cart] if body.cart else None
    result = checkout(db, cart, body.customer_info, lines)
    return result.as_payload()

@app.get("/customers/{email}", dependencies=[Depends(require_admin)])
def customer_ledger(email: str, db: Database = Depends(get_db)):
    return get_customer(db, email)

# ---------------------- Seed Demo Data ----------------------

@app.post("/admin/seed", dependencies=[Depends(require_admin)])
def seed(db: Database = Depends(get_db)):
    if db["campaign"].count_documents({}) > 0:
        return {"seeded": False, "message": "Campaigns already exist"}
    brand_id = "64b000000000000000000001"
    campaign_id = create_document(db, "campaign", Campaign(
        title="Festive Glow Week",
        description="Skincare picks promoted by our creators",
        brand_id=brand_id,
        status="active",
        start_date=now_utc(),
    ))
    demo = [
        # newer products track a campaign target, older ones a plain counter
        Product(campaign_id=campaign_id, brand_id=brand_id, name="Vitamin C Serum",
                original_price=599, campaign_price=449, discount_percentage=25,
                category="skincare", target_quantity=100, sold_quantity=0,
                images=[{"url": "https://picsum.photos/seed/serum/600/400.jpg", "is_primary": True}],
                delivery_info={"estimated_days": 4}),
        Product(campaign_id=campaign_id, brand_id=brand_id, name="Onion Hair Oil",
                original_price=399, campaign_price=319.2, discount_percentage=20,
                category="haircare", stock_quantity=40,
                images=[{"url": "https://picsum.photos/seed/oil/600/400.jpg"}],
                delivery_info={"estimated_days": 6}),
        Product(campaign_id=campaign_id, brand_id=brand_id, name="Ubtan Face Wash",
                original_price=249, campaign_price=199, discount_percentage=20,
                category="skincare", target_quantity=50, sold_quantity=10),
    ]
    for p in demo:
        create_document(db, "product", p)
    log.info("seeded campaign %s with %d products", campaign_id, len(demo))
    return {"seeded": True, "campaign_id": campaign_id, "products": len(demo)}

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
