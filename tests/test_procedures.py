"""OracleStorage against a scripted driver: procedure names, parameters and row mapping."""

import json
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal

import pytest

from storefront.core.security import verify_password
from storefront.models.schemas import (
    CheckoutItem, OrderCreate, OrderItemCreate, ProductUpdate, UserCreate, VendorCreate,
)
from storefront.storage.errors import (
    BackendUnavailable, ConstraintViolation, InvalidStatusTransition, MappingError,
)
from storefront.storage.procedures import OracleStorage

NOW = datetime(2026, 1, 15, 9, 30, 0)


def user_row(**overrides):
    row = {
        "ID": 1, "USERNAME": "alice", "EMAIL": "alice@example.com", "PASSWORD_HASH": "x",
        "FIRST_NAME": "Alice", "LAST_NAME": None, "PHONE_NUMBER": None, "ADDRESS": None,
        "CITY": None, "STATE": None, "POSTAL_CODE": None, "COUNTRY": None, "ROLE": "customer",
        "IS_VERIFIED": 1, "VERIFICATION_TOKEN": None, "RESET_TOKEN": None,
        "RESET_TOKEN_EXPIRES": None, "CREATED_AT": NOW, "UPDATED_AT": NOW,
    }
    row.update(overrides)
    return row


def product_row(**overrides):
    row = {
        "ID": 5, "NAME": "Kale", "DESCRIPTION": "Curly", "PRICE": Decimal("2.50"), "STOCK": 10,
        "IMAGE_URL": None, "CATEGORY_ID": 2, "VENDOR_ID": 3, "IS_ORGANIC": 1, "IS_FRESH_PICKED": 0,
        "IS_LOCAL": 1, "IS_FEATURED": 0, "WEIGHT_KG": None, "NUTRITIONAL_INFO": None,
        "CREATED_AT": NOW, "UPDATED_AT": NOW,
    }
    row.update(overrides)
    return row


def vendor_row(**overrides):
    row = {
        "ID": 3, "USER_ID": 1, "BUSINESS_NAME": "Green Acres", "DESCRIPTION": None, "ADDRESS": None,
        "CITY": None, "STATE": None, "POSTAL_CODE": None, "COUNTRY": "Sri Lanka", "PHONE": None,
        "WEBSITE": None, "BUSINESS_EMAIL": None, "TAGS": '["organic", "local"]', "LOGO_URL": None,
        "BANNER_URL": None, "RATING": Decimal("4.5"), "CREATED_AT": NOW, "UPDATED_AT": NOW,
    }
    row.update(overrides)
    return row


def order_row(**overrides):
    row = {
        "ID": 11, "USER_ID": 1, "STATUS": "pending", "TOTAL": Decimal("6.00"), "SHIPPING_ADDRESS": None,
        "SHIPPING_CITY": None, "SHIPPING_STATE": None, "SHIPPING_POSTAL_CODE": None,
        "SHIPPING_COUNTRY": "Sri Lanka", "SHIPPING_METHOD": None, "SHIPPING_FEE": Decimal("1.00"),
        "PAYMENT_METHOD": None, "PAYMENT_STATUS": "pending", "CREATED_AT": NOW, "UPDATED_AT": NOW,
    }
    row.update(overrides)
    return row


class FakeDriver:
    """Records every call; answers from ``results`` keyed by procedure name or SQL prefix."""

    def __init__(self, results=None, available=True):
        self.results = dict(results or {})
        self.available = available
        self.calls = []
        self.commits = 0
        self.opened = False
        self.migrated = True

    def open(self):
        self.opened = True

    def close(self):
        pass

    def run_migrations(self):
        return self.migrated

    @contextmanager
    def connection(self):
        if not self.available:
            raise BackendUnavailable("pool exhausted")
        yield self
        self.commits += 1

    def _answer(self, key, default):
        value = self.results.get(key, default)
        return value() if callable(value) else value

    def call_query(self, conn, proc, params):
        self.calls.append(("query", proc, params))
        return self._answer(proc, [])

    def call_create(self, conn, proc, params, out_name="p_id"):
        self.calls.append(("create", proc, params))
        return self._answer(proc, 1)

    def call_update(self, conn, proc, params):
        self.calls.append(("update", proc, params))
        return self._answer(proc, 1)

    def query(self, conn, sql, params):
        self.calls.append(("sql", sql, params))
        return self._answer(sql.split(" WHERE")[0], [])

    def execute(self, conn, sql, params):
        self.calls.append(("sql", sql, params))
        return 1

    def insert_returning(self, conn, sql, params, out_name="new_id"):
        self.calls.append(("sql", sql, params))
        return 1

    def procs(self, kind=None):
        return [name for k, name, _ in self.calls if kind is None or k == kind]

    def params_of(self, proc):
        return next(params for _, name, params in self.calls if name == proc)


def test_user_row_is_mapped_field_by_field():
    storage = OracleStorage(FakeDriver({"get_user_by_id": [user_row()]}))
    user = storage.get_user(1)
    assert user.username == "alice"
    assert user.password == "x"
    assert user.is_verified is True
    assert user.last_name == ""
    assert storage.driver.params_of("get_user_by_id") == {"p_id": 1}


def test_missing_column_raises_mapping_error():
    row = user_row()
    del row["EMAIL"]
    storage = OracleStorage(FakeDriver({"get_user_by_id": [row]}))
    with pytest.raises(MappingError):
        storage.get_user(1)


def test_invalid_vendor_tags_raise_mapping_error():
    storage = OracleStorage(FakeDriver({"get_vendor_by_id": [vendor_row(TAGS="not json")]}))
    with pytest.raises(MappingError):
        storage.get_vendor(3)


def test_create_user_hashes_then_reads_back():
    driver = FakeDriver({"create_user": 42, "get_user_by_id": [user_row(ID=42)]})
    storage = OracleStorage(driver)
    user = storage.create_user(UserCreate(username="alice", email="alice@example.com", password="secret123"))
    assert user.id == 42
    assert driver.procs() == ["create_user", "get_user_by_id"]
    params = driver.params_of("create_user")
    assert params["p_is_verified"] == 0
    assert verify_password("secret123", params["p_password_hash"])
    assert "p_password" not in params
    assert driver.calls[-1][2] == {"p_id": 42}


def test_update_sends_full_row_with_merged_fields():
    driver = FakeDriver({"get_product_by_id": [product_row()]})
    storage = OracleStorage(driver)
    updated = storage.update_product(5, ProductUpdate(price=Decimal("3.10"), is_featured=True))
    assert updated.price == Decimal("3.10")
    assert updated.name == "Kale"
    params = driver.params_of("update_product")
    assert params["p_id"] == 5
    assert params["p_price"] == Decimal("3.10")
    assert params["p_is_featured"] == 1
    assert params["p_is_organic"] == 1
    assert params["p_name"] == "Kale"
    assert params["p_updated_at"] == updated.updated_at


def test_update_missing_row_returns_none():
    driver = FakeDriver()
    assert OracleStorage(driver).update_product(5, ProductUpdate(stock=1)) is None
    assert "update_product" not in driver.procs()


def test_vendor_tags_are_json_encoded():
    driver = FakeDriver({"get_user_by_id": [user_row(ROLE="vendor")], "create_vendor": 3, "get_vendor_by_id": [vendor_row()]})
    vendor = OracleStorage(driver).create_vendor(VendorCreate(user_id=1, business_name="Green Acres", tags=["organic", "local"]))
    assert json.loads(driver.params_of("create_vendor")["p_tags"]) == ["organic", "local"]
    assert vendor.tags == ["organic", "local"]
    assert vendor.rating == 4.5
    assert driver.procs() == ["get_user_by_id", "create_vendor", "get_vendor_by_id"]


def test_vendor_owner_must_be_a_vendor_account():
    driver = FakeDriver({"get_user_by_id": [user_row(ROLE="customer")]})
    with pytest.raises(ConstraintViolation):
        OracleStorage(driver).create_vendor(VendorCreate(user_id=1, business_name="Green Acres"))
    assert "create_vendor" not in driver.procs()
    assert driver.commits == 0


def test_order_item_is_read_back_through_a_procedure():
    row = {"ID": 21, "ORDER_ID": 11, "PRODUCT_ID": 5, "QUANTITY": 2, "PRICE": Decimal("2.50"), "CREATED_AT": NOW}
    driver = FakeDriver({"create_order_item": 21, "get_order_item_by_id": [row]})
    item = OracleStorage(driver).create_order_item(OrderItemCreate(order_id=11, product_id=5, quantity=2))
    assert item.id == 21
    assert item.price == Decimal("2.50")
    assert driver.procs() == ["create_order_item", "get_order_item_by_id"]
    assert driver.params_of("get_order_item_by_id") == {"p_id": 21}
    assert [kind for kind, _, _ in driver.calls] == ["create", "query"]


def test_search_escapes_like_wildcards():
    driver = FakeDriver()
    OracleStorage(driver).search_products("50%_off")
    assert driver.params_of("search_products") == {"p_query": "50\\%\\_off"}


def test_unavailable_backend_reads_empty_writes_raise():
    storage = OracleStorage(FakeDriver(available=False))
    assert storage.get_products() == []
    assert storage.get_product(1) is None
    with pytest.raises(BackendUnavailable):
        storage.delete_product(1)


def test_delete_reports_row_count():
    storage = OracleStorage(FakeDriver({"delete_category": 0, "delete_vendor": 1}))
    assert storage.delete_category(1) is False
    assert storage.delete_vendor(1) is True


def test_place_order_runs_on_one_connection():
    driver = FakeDriver({"create_order": 11, "get_order_by_id": [order_row()]})
    storage = OracleStorage(driver)
    order = storage.place_order(OrderCreate(user_id=1, shipping_fee=Decimal("1.00")),
                                [CheckoutItem(product_id=5, quantity=2)])
    assert order.total == Decimal("6.00")
    assert driver.procs() == [
        "create_order", "create_order_item", "adjust_product_stock",
        "recalculate_order_total", "get_order_by_id",
    ]
    assert driver.params_of("create_order_item") == {"p_order_id": 11, "p_product_id": 5, "p_quantity": 2, "p_price": None}
    assert driver.params_of("adjust_product_stock") == {"p_id": 5, "p_delta": -2}
    assert driver.commits == 1


def test_place_order_with_missing_product_fails():
    driver = FakeDriver({"create_order": 11, "adjust_product_stock": 0})
    with pytest.raises(ConstraintViolation):
        OracleStorage(driver).place_order(OrderCreate(user_id=1), [CheckoutItem(product_id=99, quantity=1)])
    assert driver.commits == 0


def test_status_transition_checked_before_update():
    driver = FakeDriver({"get_order_by_id": [order_row(STATUS="shipped")]})
    with pytest.raises(InvalidStatusTransition):
        OracleStorage(driver).update_order_status(11, "pending")
    assert "update_order_status" not in driver.procs()


def test_reviews_use_plain_sql():
    row = {"ID": 8, "PRODUCT_ID": 5, "USER_ID": 1, "RATING": 4, "TITLE": None, "COMMENT_TEXT": None,
           "CREATED_AT": NOW, "UPDATED_AT": NOW}
    driver = FakeDriver({"SELECT id, product_id, user_id, rating, title, comment_text, created_at, updated_at FROM reviews": [row]})
    review = OracleStorage(driver).get_review("8")
    assert review.id == "8"
    assert review.comment == ""
    assert driver.calls[0][0] == "sql"


def test_non_numeric_review_id_is_not_found():
    driver = FakeDriver()
    storage = OracleStorage(driver)
    assert storage.get_review("abc") is None
    assert storage.delete_review("abc") is False
    assert driver.calls == []


def test_initialize_opens_pool_and_migrates():
    driver = FakeDriver()
    assert OracleStorage(driver).initialize() is True
    assert driver.opened

    driver.migrated = False
    assert OracleStorage(driver).initialize() is False


def test_initialize_never_raises():
    class Broken(FakeDriver):
        def open(self):
            raise BackendUnavailable("listener refused the connection")

    assert OracleStorage(Broken()).initialize() is False
