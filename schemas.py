"""
Database Schemas for the campaign storefront

Each Pydantic model represents a collection in MongoDB.
Class name lowercased = collection name (e.g., Product -> "product").
Request bodies for the cart and checkout routes live at the bottom.
"""
from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime


class ProductImage(BaseModel):
    url: str
    alt: Optional[str] = None
    is_primary: bool = False


class DeliveryInfo(BaseModel):
    estimated_days: Optional[int] = Field(None, ge=0)
    shipping_cost: float = Field(0, ge=0)
    free_shipping_threshold: Optional[float] = Field(None, ge=0)


class Campaign(BaseModel):
    title: str
    description: Optional[str] = None
    brand_id: str
    status: Literal["draft", "active", "paused", "completed", "cancelled"] = "draft"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Product(BaseModel):
    """Either stock_quantity (counter) or target_quantity + sold_quantity is set, not both."""
    campaign_id: str
    brand_id: Optional[str] = None
    name: str = Field(..., max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    images: List[ProductImage] = []
    original_price: float = Field(0, ge=0)
    campaign_price: float = Field(0, ge=0)
    discount_percentage: float = Field(0, ge=0, le=100)
    category: Optional[str] = None
    tags: List[str] = []
    stock_quantity: Optional[int] = None
    target_quantity: Optional[int] = Field(None, ge=0)
    sold_quantity: Optional[int] = Field(None, ge=0)
    is_digital: bool = False
    delivery_info: DeliveryInfo = DeliveryInfo()
    specifications: Dict[str, str] = {}
    status: Literal["active", "inactive", "out_of_stock", "discontinued"] = "active"


class Customer(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = None
    total_purchases: int = Field(0, ge=0)
    total_spent: float = Field(0, ge=0)
    last_purchase_date: Optional[datetime] = None


# ---------------------- Request bodies ----------------------

class CartLine(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class AddToCartBody(BaseModel):
    product_id: str
    # clamped to >= 1 by the cart, so anything is accepted here
    quantity: Any = 1


class RemoveFromCartBody(BaseModel):
    product_id: str


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class CheckoutBody(BaseModel):
    customer_info: CustomerInfo = CustomerInfo()
    cart: Optional[List[CartLine]] = None
