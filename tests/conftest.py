import mongomock
import pytest
from fastapi.testclient import TestClient

from database import create_document


@pytest.fixture
def db():
    return mongomock.MongoClient().db


@pytest.fixture
def make_campaign(db):
    def _make(status="active", **fields):
        doc = {"title": "Summer Drop", "brand_id": "64b000000000000000000001", "status": status}
        doc.update(fields)
        return create_document(db, "campaign", doc)
    return _make


@pytest.fixture
def make_product(db, make_campaign):
    def _make(campaign_id=None, **fields):
        doc = {
            "campaign_id": campaign_id or make_campaign(),
            "name": "Sunscreen SPF 50",
            "campaign_price": 100,
            "original_price": 120,
            "status": "active",
            "images": [],
        }
        doc.update(fields)
        return create_document(db, "product", doc)
    return _make


@pytest.fixture
def product_doc(db):
    from bson import ObjectId

    def _get(product_id):
        return db["product"].find_one({"_id": ObjectId(product_id)})
    return _get


@pytest.fixture
def client(db):
    from main import app, get_db

    app.dependency_overrides[get_db] = lambda: db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
