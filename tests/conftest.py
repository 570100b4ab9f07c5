from datetime import datetime

import mongomock
import pytest
from bson import ObjectId

import catalog
import config
import database
from schemas import CategoryCreate, ProductCreate, OrderCreate, OrderItem, ShippingAddress


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    db = mongomock.MongoClient()["store_test"]
    monkeypatch.setattr(database, "db", db)
    monkeypatch.setattr(config, "RESEND_API_KEY", "")
    monkeypatch.setattr(config, "ORDER_STRICT_TRANSITIONS", False)
    database.ensure_indexes()
    catalog.category_images.cache_clear()
    yield db
    catalog.category_images.cache_clear()


@pytest.fixture
def living_room():
    return catalog.create_category(CategoryCreate(name="Living Room", hero_image="https://img.example.com/living.jpg"))


@pytest.fixture
def make_product(living_room):
    def _make(name="Ceramic Vase", price=10.0, stock=5, images=None):
        return catalog.create_product(ProductCreate(
            name=name,
            description=f"{name} for the living room",
            price=price,
            stock=stock,
            category="Living Room",
            images=images or [],
        ))
    return _make


def address():
    return ShippingAddress(
        first_name="Ada", last_name="Moss", address="12 Elm Street",
        city="Springfield", state="IL", zip_code="62701", phone="555-0100",
    )


def order_payload(*lines, email="buyer@example.com", notes=None):
    """Build an OrderCreate from (product, quantity) pairs."""
    items = [
        OrderItem(product_id=product["_id"], quantity=quantity, price=product["price"], name=product["name"])
        for product, quantity in lines
    ]
    return OrderCreate(
        customer_email=email,
        customer_name="Ada Moss",
        items=items,
        total_amount=sum(i.price * i.quantity for i in items),
        shipping_address=address(),
        notes=notes,
    )


def insert_order(db, created_at: datetime, items, status="pending", total=None, order_number=None):
    """Write an order document directly, bypassing stock checks, for analytics fixtures.

    `items` is a list of (product_id, name, quantity, price) tuples.
    """
    line_items = [
        {"product_id": pid, "name": name, "quantity": qty, "price": price}
        for pid, name, qty, price in items
    ]
    doc = {
        "order_number": order_number or f"ORD-{str(ObjectId())[-6:]}",
        "customer_email": "buyer@example.com",
        "customer_name": "Ada Moss",
        "items": line_items,
        "total_amount": total if total is not None else sum(i["quantity"] * i["price"] for i in line_items),
        "status": status,
        "payment_status": "pending",
        "created_at": created_at,
        "updated_at": created_at,
    }
    return str(db["order"].insert_one(doc).inserted_id)
