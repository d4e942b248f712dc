import logging
from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import delete, or_, select, text
from sqlalchemy.orm import sessionmaker

from storefront.core.security import hash_password
from storefront.db.sql import (
    Base, CategoryRow, OrderItemRow, OrderRow, ProductRow, UserRow, VendorRow,
    make_engine, translate_errors,
)
from storefront.models.schemas import (
    Category, CategoryCreate, CategoryUpdate, CheckoutItem, Order, OrderCreate,
    OrderItem, OrderItemCreate, Product, ProductCreate, ProductUpdate, Review,
    ReviewCreate, ReviewUpdate, User, UserCreate, UserUpdate, Vendor,
    VendorCreate, VendorUpdate, utcnow,
)
from storefront.storage.base import (
    Storage, changes_of, coerce, merge, order_total, read_op, require_vendor_owner,
)
from storefront.storage.errors import BackendUnavailable, ConstraintViolation
from storefront.storage.reviews import InMemoryReviews

logger = logging.getLogger(__name__)


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlStorage(Storage):
    """
    Relational store on the SQLAlchemy ORM (PostgreSQL in production, SQLite in tests).

    One session per call; ``place_order`` is the only multi-statement write and
    it runs in a single session. Reviews live in an in-process map unless the
    store is wrapped in a ``CompositeStorage``.
    """

    def __init__(self, database_url: str = "sqlite://", engine=None, call_timeout: float = 10.0,
                 status_policy=None):
        super().__init__(status_policy)
        self.database_url = database_url
        self.call_timeout = call_timeout
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False) if engine is not None else None
        self._reviews = InMemoryReviews()

    # --- Lifecycle ---

    def initialize(self) -> bool:
        try:
            if self.engine is None:
                self.engine = make_engine(self.database_url, self.call_timeout)
                self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
            Base.metadata.create_all(bind=self.engine)
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info(f"Relational storage ready ({self.engine.url.get_backend_name()})")
            return True
        except Exception as e:
            logger.error(f"Relational storage failed to initialise: {e}", exc_info=True)
            return False

    def close(self):
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def _session(self):
        if self._session_factory is None:
            raise BackendUnavailable("Relational storage is not initialised")
        session = self._session_factory()
        try:
            with translate_errors():
                yield session
                session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # --- Generic helpers ---

    def _get(self, row_cls, schema, key):
        with self._session() as s:
            row = s.get(row_cls, key)
            return schema.model_validate(row, from_attributes=True) if row is not None else None

    def _select(self, schema, stmt) -> list:
        with self._session() as s:
            return [schema.model_validate(r, from_attributes=True) for r in s.scalars(stmt).all()]

    def _first(self, schema, stmt):
        found = self._select(schema, stmt.limit(1))
        return found[0] if found else None

    def _insert(self, row_cls, schema, data: dict):
        now = utcnow()
        with self._session() as s:
            row = row_cls(created_at=now, updated_at=now, **data)
            s.add(row)
            s.flush()
            return schema.model_validate(row, from_attributes=True)

    def _update(self, row_cls, schema, key, changes: dict):
        with self._session() as s:
            row = s.get(row_cls, key)
            if row is None:
                return None
            current = schema.model_validate(row, from_attributes=True)
            updated = merge(current, changes)
            if updated is current:
                return current
            for field in list(changes) + ["updated_at"]:
                setattr(row, field, getattr(updated, field))
            s.flush()
            return updated

    def _delete(self, row_cls, key) -> bool:
        with self._session() as s:
            row = s.get(row_cls, key)
            if row is None:
                return False
            s.delete(row)
            s.flush()
            return True

    # --- Users ---

    @read_op()
    def get_user(self, user_id: int) -> Optional[User]:
        return self._get(UserRow, User, user_id)

    @read_op()
    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._first(User, select(UserRow).where(UserRow.username == username))

    @read_op()
    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._first(User, select(UserRow).where(UserRow.email == email))

    @read_op()
    def get_user_by_verification_token(self, token: str) -> Optional[User]:
        return self._first(User, select(UserRow).where(UserRow.verification_token == token))

    @read_op()
    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        stmt = select(UserRow).where(
            UserRow.reset_token == token,
            or_(UserRow.reset_token_expires.is_(None), UserRow.reset_token_expires > utcnow()),
        )
        return self._first(User, stmt)

    def create_user(self, user: UserCreate) -> User:
        user = coerce(UserCreate, user)
        data = user.model_dump()
        data["password"] = hash_password(user.password)
        return self._insert(UserRow, User, data)

    def update_user(self, user_id: int, update: UserUpdate) -> Optional[User]:
        return self._update(UserRow, User, user_id, changes_of(coerce(UserUpdate, update)))

    def verify_user(self, user_id: int) -> Optional[User]:
        return self._update(UserRow, User, user_id, {"is_verified": True, "verification_token": None})

    def delete_user(self, user_id: int) -> bool:
        return self._delete(UserRow, user_id)

    # --- Categories ---

    @read_op(list)
    def get_categories(self) -> List[Category]:
        return self._select(Category, select(CategoryRow).order_by(CategoryRow.id))

    @read_op()
    def get_category(self, category_id: int) -> Optional[Category]:
        return self._get(CategoryRow, Category, category_id)

    def create_category(self, category: CategoryCreate) -> Category:
        return self._insert(CategoryRow, Category, coerce(CategoryCreate, category).model_dump())

    def update_category(self, category_id: int, update: CategoryUpdate) -> Optional[Category]:
        return self._update(CategoryRow, Category, category_id, changes_of(coerce(CategoryUpdate, update)))

    def delete_category(self, category_id: int) -> bool:
        return self._delete(CategoryRow, category_id)

    # --- Products ---

    def _products(self, *criteria) -> List[Product]:
        return self._select(Product, select(ProductRow).where(*criteria).order_by(ProductRow.id))

    @read_op(list)
    def get_products(self) -> List[Product]:
        return self._products()

    @read_op(list)
    def get_featured_products(self) -> List[Product]:
        return self._products(ProductRow.is_featured.is_(True))

    @read_op()
    def get_product(self, product_id: int) -> Optional[Product]:
        return self._get(ProductRow, Product, product_id)

    @read_op(list)
    def get_products_by_category(self, category_id: int) -> List[Product]:
        return self._products(ProductRow.category_id == category_id)

    @read_op(list)
    def get_products_by_vendor(self, vendor_id: int) -> List[Product]:
        return self._products(ProductRow.vendor_id == vendor_id)

    @read_op(list)
    def search_products(self, query: str) -> List[Product]:
        pattern = f"%{_escape_like(query)}%"
        return self._products(or_(
            ProductRow.name.ilike(pattern, escape="\\"),
            ProductRow.description.ilike(pattern, escape="\\"),
        ))

    def create_product(self, product: ProductCreate) -> Product:
        return self._insert(ProductRow, Product, coerce(ProductCreate, product).model_dump())

    def update_product(self, product_id: int, update: ProductUpdate) -> Optional[Product]:
        return self._update(ProductRow, Product, product_id, changes_of(coerce(ProductUpdate, update)))

    def adjust_product_stock(self, product_id: int, delta: int) -> Optional[Product]:
        with self._session() as s:
            row = s.get(ProductRow, product_id, with_for_update=True)
            if row is None:
                return None
            if row.stock + delta < 0:
                raise ConstraintViolation(f"product {product_id} has only {row.stock} in stock")
            row.stock = row.stock + delta
            row.updated_at = utcnow()
            s.flush()
            return Product.model_validate(row, from_attributes=True)

    def delete_product(self, product_id: int) -> bool:
        return self._delete(ProductRow, product_id)

    # --- Vendors ---

    @read_op(list)
    def get_vendors(self) -> List[Vendor]:
        return self._select(Vendor, select(VendorRow).order_by(VendorRow.id))

    @read_op()
    def get_vendor(self, vendor_id: int) -> Optional[Vendor]:
        return self._get(VendorRow, Vendor, vendor_id)

    @read_op()
    def get_vendor_by_user_id(self, user_id: int) -> Optional[Vendor]:
        return self._first(Vendor, select(VendorRow).where(VendorRow.user_id == user_id))

    def create_vendor(self, vendor: VendorCreate) -> Vendor:
        vendor = coerce(VendorCreate, vendor)
        with self._session() as s:
            owner = s.get(UserRow, vendor.user_id)
            require_vendor_owner(User.model_validate(owner, from_attributes=True) if owner else None, vendor.user_id)
            now = utcnow()
            row = VendorRow(created_at=now, updated_at=now, **vendor.model_dump())
            s.add(row)
            s.flush()
            return Vendor.model_validate(row, from_attributes=True)

    def update_vendor(self, vendor_id: int, update: VendorUpdate) -> Optional[Vendor]:
        return self._update(VendorRow, Vendor, vendor_id, changes_of(coerce(VendorUpdate, update)))

    def delete_vendor(self, vendor_id: int) -> bool:
        return self._delete(VendorRow, vendor_id)

    # --- Orders ---

    @read_op(list)
    def get_orders(self) -> List[Order]:
        return self._select(Order, select(OrderRow).order_by(OrderRow.id))

    @read_op()
    def get_order(self, order_id: int) -> Optional[Order]:
        return self._get(OrderRow, Order, order_id)

    @read_op(list)
    def get_orders_by_user(self, user_id: int) -> List[Order]:
        return self._select(Order, select(OrderRow).where(OrderRow.user_id == user_id).order_by(OrderRow.id))

    def create_order(self, order: OrderCreate) -> Order:
        order = coerce(OrderCreate, order)
        self.status_policy.check_initial(order.status)
        return self._insert(OrderRow, Order, order.model_dump())

    def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        with self._session() as s:
            row = s.get(OrderRow, order_id)
            if row is None:
                return None
            self.status_policy.check(row.status, status)
            row.status = status
            row.updated_at = utcnow()
            s.flush()
            return Order.model_validate(row, from_attributes=True)

    def update_payment_status(self, order_id: int, payment_status: str) -> Optional[Order]:
        return self._update(OrderRow, Order, order_id, {"payment_status": payment_status})

    def delete_order(self, order_id: int) -> bool:
        with self._session() as s:
            row = s.get(OrderRow, order_id)
            if row is None:
                return False
            s.execute(delete(OrderItemRow).where(OrderItemRow.order_id == order_id))
            s.delete(row)
            s.flush()
            return True

    @staticmethod
    def _add_item(s, item: OrderItemCreate, product_row=None) -> OrderItemRow:
        if s.get(OrderRow, item.order_id) is None:
            raise ConstraintViolation(f"order {item.order_id} does not exist")
        product_row = product_row or s.get(ProductRow, item.product_id)
        if product_row is None:
            raise ConstraintViolation(f"product {item.product_id} does not exist")
        row = OrderItemRow(
            order_id=item.order_id,
            product_id=item.product_id,
            quantity=item.quantity,
            price=item.price if item.price is not None else product_row.price,
            created_at=utcnow(),
        )
        s.add(row)
        s.flush()
        return row

    def place_order(self, order: OrderCreate, items: List[CheckoutItem], decrement_stock: bool = True) -> Order:
        order = coerce(OrderCreate, order)
        items = [coerce(CheckoutItem, i) for i in items]
        self.status_policy.check_initial(order.status)
        now = utcnow()
        with self._session() as s:
            order_row = OrderRow(created_at=now, updated_at=now, **order.model_dump())
            s.add(order_row)
            s.flush()
            lines = []
            for item in items:
                product_row = s.get(ProductRow, item.product_id, with_for_update=True)
                if product_row is None:
                    raise ConstraintViolation(f"product {item.product_id} does not exist")
                line = OrderItemCreate(order_id=order_row.id, **item.model_dump())
                lines.append(self._add_item(s, line, product_row))
                if decrement_stock:
                    if product_row.stock < item.quantity:
                        raise ConstraintViolation(f"product {product_row.id} has only {product_row.stock} in stock")
                    product_row.stock = product_row.stock - item.quantity
                    product_row.updated_at = now
            order_row.total = order_total(lines, order.shipping_fee)
            s.flush()
            logger.info(f"Placed order {order_row.id} with {len(lines)} items")
            return Order.model_validate(order_row, from_attributes=True)

    # --- Order items ---

    @read_op(list)
    def get_order_items(self, order_id: int) -> List[OrderItem]:
        stmt = select(OrderItemRow).where(OrderItemRow.order_id == order_id).order_by(OrderItemRow.id)
        return self._select(OrderItem, stmt)

    def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        item = coerce(OrderItemCreate, item)
        with self._session() as s:
            return OrderItem.model_validate(self._add_item(s, item), from_attributes=True)

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
