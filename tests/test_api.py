import pytest
from fastapi.testclient import TestClient

from storefront.core.config import Settings
from storefront.core.security import hash_password
from storefront.main import create_app
from storefront.storage.errors import StorageTimeout
from storefront.storage.memory import MemoryStorage
from storefront.storage.relational import SqlStorage


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def client(storage):
    return TestClient(create_app(settings=Settings(), storage=storage))


def register(client, username="alice", **extra):
    res = client.post("/api/users/register", json={
        "username": username, "email": f"{username}@example.com", "password": "secret123", **extra,
    })
    assert res.status_code == 201, res.text
    return res.json()


def seed_catalog(client):
    owner = register(client, "farmer", role="vendor")
    vendor = client.post("/api/vendors/", json={"user_id": owner["id"], "business_name": "Green Acres"}).json()
    category = client.post("/api/categories/", json={"name": "Vegetables"}).json()
    product = client.post("/api/products/", json={
        "name": "Kale", "description": "Curly kale", "price": "2.50", "stock": 10,
        "category_id": category["id"], "vendor_id": vendor["id"],
    })
    assert product.status_code == 201, product.text
    return vendor, category, product.json()


def test_root_reports_backend(client):
    assert client.get("/").json()["storage"] == "MemoryStorage"


def test_register_hides_credentials(client):
    user = register(client)
    assert "password" not in user
    assert "verification_token" not in user
    assert client.get(f"/api/users/{user['id']}").json()["username"] == "alice"


def test_duplicate_username_is_conflict(client):
    register(client)
    res = client.post("/api/users/register", json={"username": "alice", "email": "x@example.com", "password": "secret123"})
    assert res.status_code == 409


def test_login(client):
    register(client)
    assert client.post("/api/users/login", json={"username": "alice", "password": "secret123"}).status_code == 200
    assert client.post("/api/users/login", json={"username": "alice", "password": "nope"}).status_code == 401


def test_verify_email_flow(client, storage):
    user = register(client)
    token = storage.get_user(user["id"]).verification_token
    res = client.get(f"/api/users/verify/{token}")
    assert res.status_code == 200
    assert res.json()["is_verified"] is True
    assert client.get(f"/api/users/verify/{token}").status_code == 404


def test_password_reset_flow(client, storage):
    user = register(client)
    assert client.post("/api/users/forgot-password", json={"email": "alice@example.com"}).status_code == 200
    assert client.post("/api/users/forgot-password", json={"email": "ghost@example.com"}).status_code == 200
    token = storage.get_user(user["id"]).reset_token

    res = client.post("/api/users/reset-password", json={"token": token, "password": "brandnew1"})
    assert res.status_code == 200
    assert client.post("/api/users/login", json={"username": "alice", "password": "brandnew1"}).status_code == 200
    assert client.post("/api/users/reset-password", json={"token": token, "password": "again123"}).status_code == 404


def test_missing_entities_are_404(client):
    for path in ("/api/categories/9", "/api/products/9", "/api/vendors/9", "/api/orders/9",
                 "/api/users/9", "/api/reviews/nope", "/api/vendors/by-user/9"):
        assert client.get(path).status_code == 404, path
    assert client.delete("/api/products/9").status_code == 404


def test_catalog_endpoints(client):
    vendor, category, product = seed_catalog(client)
    assert product["price"] == "2.50"
    assert [p["id"] for p in client.get("/api/products/", params={"q": "KALE"}).json()] == [product["id"]]
    assert [p["id"] for p in client.get("/api/products/", params={"category_id": category["id"]}).json()] == [product["id"]]
    assert client.get(f"/api/vendors/{vendor['id']}/products").json()[0]["name"] == "Kale"
    assert client.get("/api/products/featured").json() == []

    res = client.patch(f"/api/products/{product['id']}", json={"is_featured": True})
    assert res.json()["is_featured"] is True
    assert res.json()["stock"] == 10
    assert len(client.get("/api/products/featured").json()) == 1

    assert client.post(f"/api/products/{product['id']}/stock", json={"delta": -4}).json()["stock"] == 6
    assert client.post(f"/api/products/{product['id']}/stock", json={"delta": -7}).status_code == 409


def test_delete_category_in_use_is_conflict(client):
    _, category, _ = seed_catalog(client)
    assert client.delete(f"/api/categories/{category['id']}").status_code == 409


def test_checkout_and_status(client):
    _, _, product = seed_catalog(client)
    buyer = register(client, "bob")
    res = client.post("/api/orders/checkout", json={
        "order": {"user_id": buyer["id"], "shipping_fee": "1.00"},
        "items": [{"product_id": product["id"], "quantity": 3}],
    })
    assert res.status_code == 201, res.text
    order = res.json()
    assert order["total"] == "8.50"
    assert client.get(f"/api/products/{product['id']}").json()["stock"] == 7

    items = client.get(f"/api/orders/{order['id']}/items").json()
    assert [(i["quantity"], i["price"]) for i in items] == [(3, "2.50")]

    assert client.patch(f"/api/orders/{order['id']}/status", json={"status": "processing"}).status_code == 200
    assert client.patch(f"/api/orders/{order['id']}/status", json={"status": "pending"}).status_code == 409
    assert client.patch(f"/api/orders/{order['id']}/payment", json={"payment_status": "paid"}).json()["payment_status"] == "paid"
    assert [o["id"] for o in client.get("/api/orders/", params={"user_id": buyer["id"]}).json()] == [order["id"]]


def test_checkout_out_of_stock_is_conflict(client):
    _, _, product = seed_catalog(client)
    buyer = register(client, "bob")
    res = client.post("/api/orders/checkout", json={
        "order": {"user_id": buyer["id"]},
        "items": [{"product_id": product["id"], "quantity": 50}],
    })
    assert res.status_code == 409
    assert client.get("/api/orders/").json() == []


def test_reviews(client):
    _, _, product = seed_catalog(client)
    buyer = register(client, "bob")
    res = client.post("/api/reviews/", json={"product_id": product["id"], "user_id": buyer["id"], "rating": 5, "comment": "Lovely"})
    assert res.status_code == 201
    review = res.json()
    assert review["_id"] == "1"

    assert client.patch(f"/api/reviews/{review['_id']}", json={"rating": 4}).json()["comment"] == "Lovely"
    assert [r["rating"] for r in client.get(f"/api/products/{product['id']}/reviews").json()] == [4]
    assert client.delete(f"/api/reviews/{review['_id']}").json() == {"deleted": True}
    assert client.post("/api/reviews/", json={"product_id": 999, "user_id": 1, "rating": 5}).status_code == 404


def test_unavailable_backend_is_503():
    client = TestClient(create_app(settings=Settings(), storage=SqlStorage("sqlite://")))
    assert client.get("/api/categories/").json() == []
    assert client.post("/api/categories/", json={"name": "Fruits"}).status_code == 503


def test_timeout_is_504():
    class SlowStorage(MemoryStorage):
        def create_category(self, category):
            raise StorageTimeout("call timeout of 10000 ms exceeded")

    client = TestClient(create_app(settings=Settings(), storage=SlowStorage()))
    assert client.post("/api/categories/", json={"name": "Fruits"}).status_code == 504


def test_lifespan_builds_storage_from_settings(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("SEED_DATA", "true")
    with TestClient(create_app(settings=Settings())) as client:
        assert len(client.get("/api/categories/").json()) == 6


def test_register_ignores_privileged_fields(client, storage):
    res = client.post("/api/users/register", json={
        "username": "mallory", "email": "mallory@example.com", "password": "secret123", "role": "admin",
    })
    assert res.status_code == 422

    user = register(client, "mallory", is_verified=True, reset_token="chosen", reset_token_expires="2099-01-01T00:00:00Z")
    stored = storage.get_user(user["id"])
    assert stored.is_verified is False
    assert stored.reset_token is None
    assert stored.role == "customer"


def test_prehashed_passwords_are_refused(client):
    hashed = hash_password("secret123")
    res = client.post("/api/users/register", json={"username": "alice", "email": "alice@example.com", "password": hashed})
    assert res.status_code == 422

    user = register(client)
    assert client.patch(f"/api/users/{user['id']}", json={"password": hashed}).status_code == 422
    assert client.post("/api/users/login", json={"username": "alice", "password": "secret123"}).status_code == 200


def test_reset_with_utc_offset_expiry(client):
    user = register(client)
    res = client.patch(f"/api/users/{user['id']}", json={"reset_token": "tok", "reset_token_expires": "2099-01-01T00:00:00Z"})
    assert res.status_code == 200
    assert client.post("/api/users/reset-password", json={"token": "tok", "password": "brandnew1"}).status_code == 200
    assert client.post("/api/users/login", json={"username": "alice", "password": "brandnew1"}).status_code == 200


def test_null_rating_leaves_review_intact(client):
    _, _, product = seed_catalog(client)
    buyer = register(client, "bob")
    review = client.post("/api/reviews/", json={"product_id": product["id"], "user_id": buyer["id"], "rating": 5}).json()

    assert client.patch(f"/api/reviews/{review['_id']}", json={"rating": None}).status_code == 422
    assert client.patch(f"/api/products/{product['id']}", json={"price": None}).status_code == 422
    assert [r["rating"] for r in client.get(f"/api/products/{product['id']}/reviews").json()] == [5]
    assert client.get(f"/api/products/{product['id']}").json()["price"] == "2.50"


def test_vendor_needs_vendor_account(client):
    customer = register(client, "bob")
    res = client.post("/api/vendors/", json={"user_id": customer["id"], "business_name": "Bob's Barn"})
    assert res.status_code == 409
