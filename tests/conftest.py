from decimal import Decimal

import mongomock
import pytest

from storefront.db.mongo import MongoDriver
from storefront.db.sql import make_engine
from storefront.models.schemas import CategoryCreate, ProductCreate, UserCreate, VendorCreate
from storefront.storage.composite import CompositeStorage
from storefront.storage.documents import MongoReviewStorage
from storefront.storage.memory import MemoryStorage
from storefront.storage.relational import SqlStorage


def mongomock_factory(uri, timeout_ms):
    return mongomock.MongoClient()


def make_mongo_reviews():
    reviews = MongoReviewStorage(MongoDriver("mongodb://test", "storefront_test", client_factory=mongomock_factory))
    assert reviews.initialize()
    return reviews


def make_sql_storage():
    storage = SqlStorage(engine=make_engine("sqlite://"))
    assert storage.initialize()
    return storage


BACKENDS = {
    "memory": MemoryStorage,
    "sql": make_sql_storage,
    "sql+mongo": lambda: CompositeStorage(make_sql_storage(), make_mongo_reviews()),
    "memory+mongo": lambda: CompositeStorage(MemoryStorage(), make_mongo_reviews()),
}


@pytest.fixture(params=sorted(BACKENDS))
def storage(request):
    store = BACKENDS[request.param]()
    yield store
    store.close()


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def sql_storage():
    store = make_sql_storage()
    yield store
    store.close()


@pytest.fixture
def mongo_reviews():
    reviews = make_mongo_reviews()
    yield reviews
    reviews.close()


# --- Builders ---

def new_user(storage, username="alice", **overrides):
    data = dict(username=username, email=f"{username}@example.com", password="secret123",
                first_name=username.title(), last_name="Tester")
    data.update(overrides)
    return storage.create_user(UserCreate(**data))


def new_catalog(storage, price="2.50", stock=10):
    """User -> vendor -> category -> product, returned as a dict."""
    owner = new_user(storage, "farmer", role="vendor")
    vendor = storage.create_vendor(VendorCreate(user_id=owner.id, business_name="Green Acres", tags=["organic", "local"]))
    category = storage.create_category(CategoryCreate(name="Vegetables", description="Leafy greens"))
    product = storage.create_product(ProductCreate(
        name="Kale", description="Curly kale bunch", price=Decimal(price), stock=stock,
        category_id=category.id, vendor_id=vendor.id, is_organic=True,
    ))
    return {"owner": owner, "vendor": vendor, "category": category, "product": product}
