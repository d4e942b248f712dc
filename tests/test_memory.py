import threading

from conftest import new_catalog, new_user
from storefront.models.schemas import ReviewCreate
from storefront.storage.memory import MemoryStorage
from storefront.storage.seed import seed_storage


def test_seed_loads_demo_catalogue():
    storage = MemoryStorage(seed=True)
    assert [c.name for c in storage.get_categories()] == ["Fruits", "Vegetables", "Dairy", "Bakery", "Eggs", "Herbs"]
    assert [v.business_name for v in storage.get_vendors()] == [
        "Urban Berries Farm", "City Rooftop Vegetables", "City Bakery Co-op",
    ]
    featured = storage.get_featured_products()
    assert [p.name for p in featured] == ["Organic Strawberries", "Sourdough Bread", "Farm Fresh Eggs", "Goat Cheese"]
    assert str(featured[0].price) == "4.99"
    assert storage.get_user_by_username("sarahjohnson").is_vendor
    assert storage.authenticate_user("emmachen", "password123") is not None


def test_seed_skips_non_empty_store():
    storage = MemoryStorage(seed=True)
    assert seed_storage(storage) is False
    assert len(storage.get_categories()) == 6


def test_returned_entities_are_copies(memory_storage):
    product = new_catalog(memory_storage)["product"]
    product.name = "Mutated"
    product.stock = 0
    fetched = memory_storage.get_product(product.id)
    assert fetched.name == "Kale"
    assert fetched.stock == 10


def test_concurrent_creates_get_distinct_ids(memory_storage):
    ids = []
    lock = threading.Lock()

    def register(n):
        user = new_user(memory_storage, f"user{n:03d}")
        with lock:
            ids.append(user.id)

    threads = [threading.Thread(target=register, args=(n,)) for n in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(ids) == list(range(1, 21))


def test_review_ids_count_from_one(memory_storage):
    catalog = new_catalog(memory_storage)
    first = memory_storage.create_review(ReviewCreate(product_id=catalog["product"].id, user_id=1, rating=5))
    second = memory_storage.create_review(ReviewCreate(product_id=catalog["product"].id, user_id=1, rating=2))
    assert (first.id, second.id) == ("1", "2")
