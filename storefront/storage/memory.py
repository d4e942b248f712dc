import threading
from typing import Dict, List, Optional

from storefront.core.security import hash_password
from storefront.models.schemas import (
    Category, CategoryCreate, CategoryUpdate, CheckoutItem, Order, OrderCreate,
    OrderItem, OrderItemCreate, Product, ProductCreate, ProductUpdate, Review,
    ReviewCreate, ReviewUpdate, User, UserCreate, UserUpdate, Vendor,
    VendorCreate, VendorUpdate, utcnow,
)
from storefront.storage.base import Storage, changes_of, coerce, merge, order_total, require_vendor_owner
from storefront.storage.errors import ConstraintViolation
from storefront.storage.reviews import InMemoryReviews


class MemoryStorage(Storage):
    """
    Dict-backed storage. Reference behaviour for every other backend.

    All state sits behind one coarse lock; FastAPI runs sync endpoints on a
    thread pool so the maps are mutated from several threads.
    """

    def __init__(self, seed: bool = False, status_policy=None):
        super().__init__(status_policy)
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._categories: Dict[int, Category] = {}
        self._products: Dict[int, Product] = {}
        self._vendors: Dict[int, Vendor] = {}
        self._orders: Dict[int, Order] = {}
        self._order_items: Dict[int, OrderItem] = {}
        self._reviews = InMemoryReviews()
        self._counters = {name: 1 for name in ("user", "category", "product", "vendor", "order", "order_item")}
        if seed:
            from storefront.storage.seed import seed_storage
            seed_storage(self)

    # --- Helpers ---

    def _next_id(self, name: str) -> int:
        value = self._counters[name]
        self._counters[name] = value + 1
        return value

    @staticmethod
    def _copy(entity):
        return entity.model_copy(deep=True) if entity is not None else None

    def _list(self, table: dict, **match) -> list:
        with self._lock:
            return [
                e.model_copy(deep=True)
                for e in table.values()
                if all(getattr(e, k) == v for k, v in match.items())
            ]

    def _require(self, table: dict, key: Optional[int], label: str):
        if key not in table:
            raise ConstraintViolation(f"{label} {key} does not exist")

    # --- Users ---

    def _check_user_unique(self, username: str, email: str, exclude: Optional[int] = None):
        for user in self._users.values():
            if user.id == exclude:
                continue
            if user.username == username:
                raise ConstraintViolation(f"username '{username}' is already taken")
            if user.email == email:
                raise ConstraintViolation(f"email '{email}' is already registered")

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._copy(self._users.get(user_id))

    def _find_user(self, **match) -> Optional[User]:
        found = self._list(self._users, **match)
        return found[0] if found else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._find_user(username=username)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._find_user(email=email)

    def get_user_by_verification_token(self, token: str) -> Optional[User]:
        return self._find_user(verification_token=token)

    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        user = self._find_user(reset_token=token)
        if user is None:
            return None
        if user.reset_token_expires is not None and user.reset_token_expires <= utcnow():
            return None
        return user

    def create_user(self, user: UserCreate) -> User:
        user = coerce(UserCreate, user)
        with self._lock:
            self._check_user_unique(user.username, user.email)
            now = utcnow()
            data = user.model_dump()
            data["password"] = hash_password(user.password)
            record = User(id=self._next_id("user"), created_at=now, updated_at=now, **data)
            self._users[record.id] = record
            return self._copy(record)

    def update_user(self, user_id: int, update: UserUpdate) -> Optional[User]:
        changes = changes_of(coerce(UserUpdate, update))
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            updated = merge(current, changes)
            self._check_user_unique(updated.username, updated.email, exclude=user_id)
            self._users[user_id] = updated
            return self._copy(updated)

    def verify_user(self, user_id: int) -> Optional[User]:
        return self.update_user(user_id, UserUpdate(is_verified=True, verification_token=None))

    def delete_user(self, user_id: int) -> bool:
        with self._lock:
            if user_id not in self._users:
                return False
            if any(v.user_id == user_id for v in self._vendors.values()):
                raise ConstraintViolation(f"user {user_id} still owns a vendor")
            if any(o.user_id == user_id for o in self._orders.values()):
                raise ConstraintViolation(f"user {user_id} still has orders")
            del self._users[user_id]
            return True

    # --- Categories ---

    def _check_category_name(self, name: str, exclude: Optional[int] = None):
        if any(c.name == name and c.id != exclude for c in self._categories.values()):
            raise ConstraintViolation(f"category '{name}' already exists")

    def get_categories(self) -> List[Category]:
        return self._list(self._categories)

    def get_category(self, category_id: int) -> Optional[Category]:
        with self._lock:
            return self._copy(self._categories.get(category_id))

    def create_category(self, category: CategoryCreate) -> Category:
        category = coerce(CategoryCreate, category)
        with self._lock:
            self._check_category_name(category.name)
            now = utcnow()
            record = Category(id=self._next_id("category"), created_at=now, updated_at=now, **category.model_dump())
            self._categories[record.id] = record
            return self._copy(record)

    def update_category(self, category_id: int, update: CategoryUpdate) -> Optional[Category]:
        changes = changes_of(coerce(CategoryUpdate, update))
        with self._lock:
            current = self._categories.get(category_id)
            if current is None:
                return None
            updated = merge(current, changes)
            self._check_category_name(updated.name, exclude=category_id)
            self._categories[category_id] = updated
            return self._copy(updated)

    def delete_category(self, category_id: int) -> bool:
        with self._lock:
            if category_id not in self._categories:
                return False
            if any(p.category_id == category_id for p in self._products.values()):
                raise ConstraintViolation(f"category {category_id} still has products")
            del self._categories[category_id]
            return True

    # --- Products ---

    def _check_product_refs(self, product: Product):
        self._require(self._categories, product.category_id, "category")
        self._require(self._vendors, product.vendor_id, "vendor")

    def get_products(self) -> List[Product]:
        return self._list(self._products)

    def get_featured_products(self) -> List[Product]:
        return self._list(self._products, is_featured=True)

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._lock:
            return self._copy(self._products.get(product_id))

    def get_products_by_category(self, category_id: int) -> List[Product]:
        return self._list(self._products, category_id=category_id)

    def get_products_by_vendor(self, vendor_id: int) -> List[Product]:
        return self._list(self._products, vendor_id=vendor_id)

    def search_products(self, query: str) -> List[Product]:
        needle = query.lower()
        return [
            p for p in self._list(self._products)
            if needle in p.name.lower() or needle in (p.description or "").lower()
        ]

    def create_product(self, product: ProductCreate) -> Product:
        product = coerce(ProductCreate, product)
        with self._lock:
            now = utcnow()
            record = Product(id=self._counters["product"], created_at=now, updated_at=now, **product.model_dump())
            self._check_product_refs(record)
            self._next_id("product")
            self._products[record.id] = record
            return self._copy(record)

    def update_product(self, product_id: int, update: ProductUpdate) -> Optional[Product]:
        changes = changes_of(coerce(ProductUpdate, update))
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            updated = merge(current, changes)
            self._check_product_refs(updated)
            self._products[product_id] = updated
            return self._copy(updated)

    def adjust_product_stock(self, product_id: int, delta: int) -> Optional[Product]:
        with self._lock:
            current = self._products.get(product_id)
            if current is None:
                return None
            if current.stock + delta < 0:
                raise ConstraintViolation(f"product {product_id} has only {current.stock} in stock")
            updated = merge(current, {"stock": current.stock + delta})
            self._products[product_id] = updated
            return self._copy(updated)

    def delete_product(self, product_id: int) -> bool:
        with self._lock:
            if product_id not in self._products:
                return False
            if any(i.product_id == product_id for i in self._order_items.values()):
                raise ConstraintViolation(f"product {product_id} is referenced by order items")
            del self._products[product_id]
            return True

    # --- Vendors ---

    def get_vendors(self) -> List[Vendor]:
        return self._list(self._vendors)

    def get_vendor(self, vendor_id: int) -> Optional[Vendor]:
        with self._lock:
            return self._copy(self._vendors.get(vendor_id))

    def get_vendor_by_user_id(self, user_id: int) -> Optional[Vendor]:
        found = self._list(self._vendors, user_id=user_id)
        return found[0] if found else None

    def create_vendor(self, vendor: VendorCreate) -> Vendor:
        vendor = coerce(VendorCreate, vendor)
        with self._lock:
            require_vendor_owner(self._users.get(vendor.user_id), vendor.user_id)
            if any(v.user_id == vendor.user_id for v in self._vendors.values()):
                raise ConstraintViolation(f"user {vendor.user_id} already has a vendor")
            now = utcnow()
            record = Vendor(id=self._next_id("vendor"), created_at=now, updated_at=now, **vendor.model_dump())
            self._vendors[record.id] = record
            return self._copy(record)

    def update_vendor(self, vendor_id: int, update: VendorUpdate) -> Optional[Vendor]:
        changes = changes_of(coerce(VendorUpdate, update))
        with self._lock:
            current = self._vendors.get(vendor_id)
            if current is None:
                return None
            updated = merge(current, changes)
            self._vendors[vendor_id] = updated
            return self._copy(updated)

    def delete_vendor(self, vendor_id: int) -> bool:
        with self._lock:
            if vendor_id not in self._vendors:
                return False
            if any(p.vendor_id == vendor_id for p in self._products.values()):
                raise ConstraintViolation(f"vendor {vendor_id} still has products")
            del self._vendors[vendor_id]
            return True

    # --- Orders ---

    def get_orders(self) -> List[Order]:
        return self._list(self._orders)

    def get_order(self, order_id: int) -> Optional[Order]:
        with self._lock:
            return self._copy(self._orders.get(order_id))

    def get_orders_by_user(self, user_id: int) -> List[Order]:
        return self._list(self._orders, user_id=user_id)

    def _insert_order(self, order: OrderCreate) -> Order:
        self.status_policy.check_initial(order.status)
        self._require(self._users, order.user_id, "user")
        now = utcnow()
        record = Order(id=self._next_id("order"), created_at=now, updated_at=now, **order.model_dump())
        self._orders[record.id] = record
        return record

    def create_order(self, order: OrderCreate) -> Order:
        order = coerce(OrderCreate, order)
        with self._lock:
            return self._copy(self._insert_order(order))

    def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            self.status_policy.check(current.status, status)
            updated = merge(current, {"status": status})
            self._orders[order_id] = updated
            return self._copy(updated)

    def update_payment_status(self, order_id: int, payment_status: str) -> Optional[Order]:
        with self._lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            updated = merge(current, {"payment_status": payment_status})
            self._orders[order_id] = updated
            return self._copy(updated)

    def delete_order(self, order_id: int) -> bool:
        with self._lock:
            if self._orders.pop(order_id, None) is None:
                return False
            for item_id in [i.id for i in self._order_items.values() if i.order_id == order_id]:
                del self._order_items[item_id]
            return True

    def place_order(self, order: OrderCreate, items: List[CheckoutItem], decrement_stock: bool = True) -> Order:
        order = coerce(OrderCreate, order)
        items = [coerce(CheckoutItem, i) for i in items]
        with self._lock:
            # Work on snapshots so any failure leaves the store untouched
            snapshot = (dict(self._orders), dict(self._order_items), dict(self._products), dict(self._counters))
            try:
                record = self._insert_order(order)
                lines = [
                    self._insert_order_item(OrderItemCreate(order_id=record.id, **item.model_dump()))
                    for item in items
                ]
                if decrement_stock:
                    for line in lines:
                        product = self._products[line.product_id]
                        if product.stock < line.quantity:
                            raise ConstraintViolation(f"product {product.id} has only {product.stock} in stock")
                        self._products[product.id] = merge(product, {"stock": product.stock - line.quantity})
                record = record.model_copy(update={"total": order_total(lines, record.shipping_fee)})
                self._orders[record.id] = record
                return self._copy(record)
            except Exception:
                self._orders, self._order_items, self._products, self._counters = snapshot
                raise

    # --- Order items ---

    def get_order_items(self, order_id: int) -> List[OrderItem]:
        return self._list(self._order_items, order_id=order_id)

    def _insert_order_item(self, item: OrderItemCreate) -> OrderItem:
        self._require(self._orders, item.order_id, "order")
        self._require(self._products, item.product_id, "product")
        data = item.model_dump()
        if data["price"] is None:
            data["price"] = self._products[item.product_id].price
        record = OrderItem(id=self._next_id("order_item"), created_at=utcnow(), **data)
        self._order_items[record.id] = record
        return record

    def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        item = coerce(OrderItemCreate, item)
        with self._lock:
            return self._copy(self._insert_order_item(item))

    # --- Reviews ---

    def get_reviews(self, product_id: int) -> List[Review]:
        return self._reviews.by_product(product_id)

    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        return self._reviews.by_user(user_id)

    def get_review(self, review_id: str) -> Optional[Review]:
        return self._reviews.get(review_id)

    def create_review(self, review: ReviewCreate) -> Review:
        return self._reviews.create(coerce(ReviewCreate, review))

    def update_review(self, review_id: str, update: ReviewUpdate) -> Optional[Review]:
        return self._reviews.update(review_id, changes_of(coerce(ReviewUpdate, update)))

    def delete_review(self, review_id: str) -> bool:
        return self._reviews.delete(review_id)
