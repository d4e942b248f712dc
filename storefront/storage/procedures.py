import json
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError

from storefront.core.security import hash_password
from storefront.models.schemas import (
    Category, CategoryCreate, CategoryUpdate, CheckoutItem, Order, OrderCreate,
    OrderItem, OrderItemCreate, Product, ProductCreate, ProductUpdate, Review,
    ReviewCreate, ReviewUpdate, User, UserCreate, UserUpdate, Vendor,
    VendorCreate, VendorUpdate, utcnow,
)
from storefront.storage.base import Storage, changes_of, coerce, merge, read_op, require_vendor_owner
from storefront.storage.errors import ConstraintViolation, MappingError

logger = logging.getLogger(__name__)

# Parameter order of the create/update procedures (without the p_ prefix)
USER_PARAMS = (
    "username", "email", "password_hash", "first_name", "last_name", "phone_number", "address",
    "city", "state", "postal_code", "country", "role", "is_verified", "verification_token",
    "reset_token", "reset_token_expires",
)
CATEGORY_PARAMS = ("name", "description", "image_url")
PRODUCT_PARAMS = (
    "name", "description", "price", "stock", "image_url", "category_id", "vendor_id", "is_organic",
    "is_fresh_picked", "is_local", "is_featured", "weight_kg", "nutritional_info",
)
VENDOR_PARAMS = (
    "user_id", "business_name", "description", "address", "city", "state", "postal_code", "country",
    "phone", "website", "business_email", "tags", "logo_url", "banner_url", "rating",
)
ORDER_PARAMS = (
    "user_id", "status", "total", "shipping_address", "shipping_city", "shipping_state",
    "shipping_postal_code", "shipping_country", "shipping_method", "shipping_fee", "payment_method",
    "payment_status",
)

REVIEW_COLUMNS = "id, product_id, user_id, rating, title, comment_text, created_at, updated_at"


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _col(row: Dict, name: str):
    try:
        return row[name]
    except KeyError:
        raise MappingError(f"Column {name} missing from Oracle row (got {sorted(row)})") from None


def _flag(value) -> int:
    return 1 if value else 0


def _build(model, data: Dict, source: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MappingError(f"Oracle {source} row does not match {model.__name__}: {e}") from e


# --- Row mappers (upper-case column names -> entities) ---

def map_user(row: Dict) -> User:
    return _build(User, {
        "id": _col(row, "ID"),
        "username": _col(row, "USERNAME"),
        "email": _col(row, "EMAIL"),
        "password": _col(row, "PASSWORD_HASH"),
        "first_name": _col(row, "FIRST_NAME") or "",
        "last_name": _col(row, "LAST_NAME") or "",
        "phone_number": _col(row, "PHONE_NUMBER"),
        "address": _col(row, "ADDRESS"),
        "city": _col(row, "CITY"),
        "state": _col(row, "STATE"),
        "postal_code": _col(row, "POSTAL_CODE"),
        "country": _col(row, "COUNTRY"),
        "role": _col(row, "ROLE"),
        "is_verified": bool(_col(row, "IS_VERIFIED")),
        "verification_token": _col(row, "VERIFICATION_TOKEN"),
        "reset_token": _col(row, "RESET_TOKEN"),
        "reset_token_expires": _col(row, "RESET_TOKEN_EXPIRES"),
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "users")


def map_category(row: Dict) -> Category:
    return _build(Category, {
        "id": _col(row, "ID"),
        "name": _col(row, "NAME"),
        "description": _col(row, "DESCRIPTION"),
        "image_url": _col(row, "IMAGE_URL"),
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "categories")


def map_product(row: Dict) -> Product:
    return _build(Product, {
        "id": _col(row, "ID"),
        "name": _col(row, "NAME"),
        "description": _col(row, "DESCRIPTION"),
        "price": _col(row, "PRICE"),
        "stock": _col(row, "STOCK"),
        "image_url": _col(row, "IMAGE_URL"),
        "category_id": _col(row, "CATEGORY_ID"),
        "vendor_id": _col(row, "VENDOR_ID"),
        "is_organic": bool(_col(row, "IS_ORGANIC")),
        "is_fresh_picked": bool(_col(row, "IS_FRESH_PICKED")),
        "is_local": bool(_col(row, "IS_LOCAL")),
        "is_featured": bool(_col(row, "IS_FEATURED")),
        "weight_kg": _col(row, "WEIGHT_KG"),
        "nutritional_info": _col(row, "NUTRITIONAL_INFO"),
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "products")


def map_vendor(row: Dict) -> Vendor:
    raw_tags = _col(row, "TAGS")
    try:
        tags = json.loads(raw_tags) if raw_tags else []
    except (TypeError, ValueError) as e:
        raise MappingError(f"Vendor tags are not valid JSON: {raw_tags!r}") from e
    return _build(Vendor, {
        "id": _col(row, "ID"),
        "user_id": _col(row, "USER_ID"),
        "business_name": _col(row, "BUSINESS_NAME"),
        "description": _col(row, "DESCRIPTION"),
        "address": _col(row, "ADDRESS"),
        "city": _col(row, "CITY"),
        "state": _col(row, "STATE"),
        "postal_code": _col(row, "POSTAL_CODE"),
        "country": _col(row, "COUNTRY"),
        "phone": _col(row, "PHONE"),
        "website": _col(row, "WEBSITE"),
        "business_email": _col(row, "BUSINESS_EMAIL"),
        "tags": tags,
        "logo_url": _col(row, "LOGO_URL"),
        "banner_url": _col(row, "BANNER_URL"),
        "rating": float(_col(row, "RATING") or 0),
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "vendors")


def map_order(row: Dict) -> Order:
    return _build(Order, {
        "id": _col(row, "ID"),
        "user_id": _col(row, "USER_ID"),
        "status": _col(row, "STATUS"),
        "total": _col(row, "TOTAL"),
        "shipping_address": _col(row, "SHIPPING_ADDRESS"),
        "shipping_city": _col(row, "SHIPPING_CITY"),
        "shipping_state": _col(row, "SHIPPING_STATE"),
        "shipping_postal_code": _col(row, "SHIPPING_POSTAL_CODE"),
        "shipping_country": _col(row, "SHIPPING_COUNTRY"),
        "shipping_method": _col(row, "SHIPPING_METHOD"),
        "shipping_fee": _col(row, "SHIPPING_FEE"),
        "payment_method": _col(row, "PAYMENT_METHOD"),
        "payment_status": _col(row, "PAYMENT_STATUS"),
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "orders")


def map_order_item(row: Dict) -> OrderItem:
    return _build(OrderItem, {
        "id": _col(row, "ID"),
        "order_id": _col(row, "ORDER_ID"),
        "product_id": _col(row, "PRODUCT_ID"),
        "quantity": _col(row, "QUANTITY"),
        "price": _col(row, "PRICE"),
        "created_at": _col(row, "CREATED_AT"),
    }, "order_items")


def map_review(row: Dict) -> Review:
    return _build(Review, {
        "id": str(_col(row, "ID")),
        "product_id": _col(row, "PRODUCT_ID"),
        "user_id": _col(row, "USER_ID"),
        "rating": _col(row, "RATING"),
        "title": _col(row, "TITLE"),
        "comment": _col(row, "COMMENT_TEXT") or "",
        "created_at": _col(row, "CREATED_AT"),
        "updated_at": _col(row, "UPDATED_AT"),
    }, "reviews")


# --- Entity -> procedure parameters ---

def user_params(user) -> Dict:
    data = user.model_dump()
    data["password_hash"] = data.pop("password")
    data["is_verified"] = _flag(data["is_verified"])
    return {f"p_{name}": data[name] for name in USER_PARAMS}


def product_params(product) -> Dict:
    data = product.model_dump()
    for flag in ("is_organic", "is_fresh_picked", "is_local", "is_featured"):
        data[flag] = _flag(data[flag])
    return {f"p_{name}": data[name] for name in PRODUCT_PARAMS}


def vendor_params(vendor) -> Dict:
    data = vendor.model_dump()
    data["tags"] = json.dumps(data["tags"])
    return {f"p_{name}": data[name] for name in VENDOR_PARAMS}


def _params(entity, names) -> Dict:
    data = entity.model_dump()
    return {f"p_{name}": data[name] for name in names}


class OracleStorage(Storage):
    """
    Stored-procedure store on Oracle.

    Entity operations go through the PL/SQL procedures in
    ``storefront/db/oracle_migrations``; reviews and token lookups are plain
    parameterised SQL. Creates return the new id and the row is read back.
    """

    def __init__(self, driver, status_policy=None):
        super().__init__(status_policy)
        self.driver = driver

    def initialize(self) -> bool:
        try:
            self.driver.open()
            if not self.driver.run_migrations():
                return False
            logger.info("Oracle storage ready")
            return True
        except Exception as e:
            logger.error(f"Oracle storage failed to initialise: {e}", exc_info=True)
            return False

    def close(self):
        self.driver.close()

    # --- Generic helpers ---

    def _one(self, conn, proc: str, params: Dict, mapper):
        rows = self.driver.call_query(conn, proc, params)
        return mapper(rows[0]) if rows else None

    def _fetch_one(self, proc: str, params: Dict, mapper):
        with self.driver.connection() as conn:
            return self._one(conn, proc, params, mapper)

    def _fetch_all(self, proc: str, params: Dict, mapper) -> list:
        with self.driver.connection() as conn:
            return [mapper(row) for row in self.driver.call_query(conn, proc, params)]

    def _create(self, proc: str, params: Dict, get_proc: str, mapper):
        with self.driver.connection() as conn:
            new_id = self.driver.call_create(conn, proc, params)
            return self._one(conn, get_proc, {"p_id": new_id}, mapper)

    def _update(self, key: int, changes: Dict, get_proc: str, update_proc: str, mapper, to_params):
        with self.driver.connection() as conn:
            current = self._one(conn, get_proc, {"p_id": key}, mapper)
            if current is None:
                return None
            updated = merge(current, changes)
            if updated is current:
                return current
            params = {"p_id": key, **to_params(updated), "p_updated_at": updated.updated_at}
            if not self.driver.call_update(conn, update_proc, params):
                return None
            return updated

    def _write(self, proc: str, params: Dict) -> int:
        with self.driver.connection() as conn:
            return self.driver.call_update(conn, proc, params)

    # --- Users ---

    @read_op()
    def get_user(self, user_id: int) -> Optional[User]:
        return self._fetch_one("get_user_by_id", {"p_id": user_id}, map_user)

    @read_op()
    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._fetch_one("get_user_by_username", {"p_username": username}, map_user)

    @read_op()
    def get_user_by_email(self, email: str) -> Optional[User]:
        return self._fetch_one("get_user_by_email", {"p_email": email}, map_user)

    @read_op()
    def get_user_by_verification_token(self, token: str) -> Optional[User]:
        with self.driver.connection() as conn:
            rows = self.driver.query(conn, "SELECT * FROM users WHERE verification_token = :token", {"token": token})
            return map_user(rows[0]) if rows else None

    @read_op()
    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        sql = (
            "SELECT * FROM users WHERE reset_token = :token "
            "AND (reset_token_expires IS NULL OR reset_token_expires > :now)"
        )
        with self.driver.connection() as conn:
            rows = self.driver.query(conn, sql, {"token": token, "now": utcnow()})
            return map_user(rows[0]) if rows else None

    def create_user(self, user: UserCreate) -> User:
        user = coerce(UserCreate, user)
        user = user.model_copy(update={"password": hash_password(user.password)})
        return self._create("create_user", user_params(user), "get_user_by_id", map_user)

    def update_user(self, user_id: int, update: UserUpdate) -> Optional[User]:
        changes = changes_of(coerce(UserUpdate, update))
        return self._update(user_id, changes, "get_user_by_id", "update_user", map_user, user_params)

    def verify_user(self, user_id: int) -> Optional[User]:
        with self.driver.connection() as conn:
            if not self.driver.call_update(conn, "verify_user", {"p_id": user_id}):
                return None
            return self._one(conn, "get_user_by_id", {"p_id": user_id}, map_user)

    def delete_user(self, user_id: int) -> bool:
        return self._write("delete_user", {"p_id": user_id}) > 0

    # --- Categories ---

    @read_op(list)
    def get_categories(self) -> List[Category]:
        return self._fetch_all("get_all_categories", {}, map_category)

    @read_op()
    def get_category(self, category_id: int) -> Optional[Category]:
        return self._fetch_one("get_category_by_id", {"p_id": category_id}, map_category)

    def create_category(self, category: CategoryCreate) -> Category:
        params = _params(coerce(CategoryCreate, category), CATEGORY_PARAMS)
        return self._create("create_category", params, "get_category_by_id", map_category)

    def update_category(self, category_id: int, update: CategoryUpdate) -> Optional[Category]:
        changes = changes_of(coerce(CategoryUpdate, update))
        return self._update(category_id, changes, "get_category_by_id", "update_category", map_category,
                            lambda c: _params(c, CATEGORY_PARAMS))

    def delete_category(self, category_id: int) -> bool:
        return self._write("delete_category", {"p_id": category_id}) > 0

    # --- Products ---

    @read_op(list)
    def get_products(self) -> List[Product]:
        return self._fetch_all("get_all_products", {}, map_product)

    @read_op(list)
    def get_featured_products(self) -> List[Product]:
        return self._fetch_all("get_featured_products", {}, map_product)

    @read_op()
    def get_product(self, product_id: int) -> Optional[Product]:
        return self._fetch_one("get_product_by_id", {"p_id": product_id}, map_product)

    @read_op(list)
    def get_products_by_category(self, category_id: int) -> List[Product]:
        return self._fetch_all("get_products_by_category", {"p_category_id": category_id}, map_product)

    @read_op(list)
    def get_products_by_vendor(self, vendor_id: int) -> List[Product]:
        return self._fetch_all("get_products_by_vendor", {"p_vendor_id": vendor_id}, map_product)

    @read_op(list)
    def search_products(self, query: str) -> List[Product]:
        return self._fetch_all("search_products", {"p_query": _escape_like(query)}, map_product)

    def create_product(self, product: ProductCreate) -> Product:
        params = product_params(coerce(ProductCreate, product))
        return self._create("create_product", params, "get_product_by_id", map_product)

    def update_product(self, product_id: int, update: ProductUpdate) -> Optional[Product]:
        changes = changes_of(coerce(ProductUpdate, update))
        return self._update(product_id, changes, "get_product_by_id", "update_product", map_product, product_params)

    def adjust_product_stock(self, product_id: int, delta: int) -> Optional[Product]:
        with self.driver.connection() as conn:
            if not self.driver.call_update(conn, "adjust_product_stock", {"p_id": product_id, "p_delta": delta}):
                return None
            return self._one(conn, "get_product_by_id", {"p_id": product_id}, map_product)

    def delete_product(self, product_id: int) -> bool:
        return self._write("delete_product", {"p_id": product_id}) > 0

    # --- Vendors ---

    @read_op(list)
    def get_vendors(self) -> List[Vendor]:
        return self._fetch_all("get_all_vendors", {}, map_vendor)

    @read_op()
    def get_vendor(self, vendor_id: int) -> Optional[Vendor]:
        return self._fetch_one("get_vendor_by_id", {"p_id": vendor_id}, map_vendor)

    @read_op()
    def get_vendor_by_user_id(self, user_id: int) -> Optional[Vendor]:
        return self._fetch_one("get_vendor_by_user_id", {"p_user_id": user_id}, map_vendor)

    def create_vendor(self, vendor: VendorCreate) -> Vendor:
        vendor = coerce(VendorCreate, vendor)
        with self.driver.connection() as conn:
            owner = self._one(conn, "get_user_by_id", {"p_id": vendor.user_id}, map_user)
            require_vendor_owner(owner, vendor.user_id)
            new_id = self.driver.call_create(conn, "create_vendor", vendor_params(vendor))
            return self._one(conn, "get_vendor_by_id", {"p_id": new_id}, map_vendor)

    def update_vendor(self, vendor_id: int, update: VendorUpdate) -> Optional[Vendor]:
        changes = changes_of(coerce(VendorUpdate, update))
        return self._update(vendor_id, changes, "get_vendor_by_id", "update_vendor", map_vendor, vendor_params)

    def delete_vendor(self, vendor_id: int) -> bool:
        return self._write("delete_vendor", {"p_id": vendor_id}) > 0

    # --- Orders ---

    @read_op(list)
    def get_orders(self) -> List[Order]:
        return self._fetch_all("get_all_orders", {}, map_order)

    @read_op()
    def get_order(self, order_id: int) -> Optional[Order]:
        return self._fetch_one("get_order_by_id", {"p_id": order_id}, map_order)

    @read_op(list)
    def get_orders_by_user(self, user_id: int) -> List[Order]:
        return self._fetch_all("get_orders_by_user", {"p_user_id": user_id}, map_order)

    def create_order(self, order: OrderCreate) -> Order:
        order = coerce(OrderCreate, order)
        self.status_policy.check_initial(order.status)
        return self._create("create_order", _params(order, ORDER_PARAMS), "get_order_by_id", map_order)

    def update_order_status(self, order_id: int, status: str) -> Optional[Order]:
        with self.driver.connection() as conn:
            current = self._one(conn, "get_order_by_id", {"p_id": order_id}, map_order)
            if current is None:
                return None
            self.status_policy.check(current.status, status)
            self.driver.call_update(conn, "update_order_status", {"p_id": order_id, "p_status": status})
            return self._one(conn, "get_order_by_id", {"p_id": order_id}, map_order)

    def update_payment_status(self, order_id: int, payment_status: str) -> Optional[Order]:
        with self.driver.connection() as conn:
            params = {"p_id": order_id, "p_payment_status": payment_status}
            if not self.driver.call_update(conn, "update_payment_status", params):
                return None
            return self._one(conn, "get_order_by_id", {"p_id": order_id}, map_order)

    def delete_order(self, order_id: int) -> bool:
        return self._write("delete_order", {"p_id": order_id}) > 0

    def place_order(self, order: OrderCreate, items: List[CheckoutItem], decrement_stock: bool = True) -> Order:
        order = coerce(OrderCreate, order)
        items = [coerce(CheckoutItem, i) for i in items]
        self.status_policy.check_initial(order.status)
        # One connection, one commit: any failure rolls the whole order back
        with self.driver.connection() as conn:
            order_id = self.driver.call_create(conn, "create_order", _params(order, ORDER_PARAMS))
            for item in items:
                self.driver.call_create(conn, "create_order_item", {
                    "p_order_id": order_id,
                    "p_product_id": item.product_id,
                    "p_quantity": item.quantity,
                    "p_price": None,
                })
                if decrement_stock:
                    params = {"p_id": item.product_id, "p_delta": -item.quantity}
                    if not self.driver.call_update(conn, "adjust_product_stock", params):
                        raise ConstraintViolation(f"product {item.product_id} does not exist")
            self.driver.call_update(conn, "recalculate_order_total", {"p_id": order_id})
            placed = self._one(conn, "get_order_by_id", {"p_id": order_id}, map_order)
        logger.info(f"Placed order {order_id} with {len(items)} items")
        return placed

    # --- Order items ---

    @read_op(list)
    def get_order_items(self, order_id: int) -> List[OrderItem]:
        return self._fetch_all("get_order_items", {"p_order_id": order_id}, map_order_item)

    def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        item = coerce(OrderItemCreate, item)
        params = {
            "p_order_id": item.order_id,
            "p_product_id": item.product_id,
            "p_quantity": item.quantity,
            "p_price": item.price,
        }
        return self._create("create_order_item", params, "get_order_item_by_id", map_order_item)

    # --- Reviews (plain SQL) ---

    @read_op(list)
    def get_reviews(self, product_id: int) -> List[Review]:
        sql = f"SELECT {REVIEW_COLUMNS} FROM reviews WHERE product_id = :product_id ORDER BY id"
        with self.driver.connection() as conn:
            return [map_review(r) for r in self.driver.query(conn, sql, {"product_id": product_id})]

    @read_op(list)
    def get_reviews_by_user(self, user_id: int) -> List[Review]:
        sql = f"SELECT {REVIEW_COLUMNS} FROM reviews WHERE user_id = :user_id ORDER BY id"
        with self.driver.connection() as conn:
            return [map_review(r) for r in self.driver.query(conn, sql, {"user_id": user_id})]

    def _review(self, conn, review_id: int) -> Optional[Review]:
        sql = f"SELECT {REVIEW_COLUMNS} FROM reviews WHERE id = :id"
        rows = self.driver.query(conn, sql, {"id": review_id})
        return map_review(rows[0]) if rows else None

    @read_op()
    def get_review(self, review_id: str) -> Optional[Review]:
        if not str(review_id).isdigit():
            return None
        with self.driver.connection() as conn:
            return self._review(conn, int(review_id))

    def create_review(self, review: ReviewCreate) -> Review:
        review = coerce(ReviewCreate, review)
        sql = (
            "INSERT INTO reviews (product_id, user_id, rating, title, comment_text) "
            "VALUES (:product_id, :user_id, :rating, :title, :comment_text) RETURNING id INTO :new_id"
        )
        params = {
            "product_id": review.product_id,
            "user_id": review.user_id,
            "rating": review.rating,
            "title": review.title,
            "comment_text": review.comment,
        }
        with self.driver.connection() as conn:
            new_id = self.driver.insert_returning(conn, sql, params)
            return self._review(conn, new_id)

    def update_review(self, review_id: str, update: ReviewUpdate) -> Optional[Review]:
        if not str(review_id).isdigit():
            return None
        changes = changes_of(coerce(ReviewUpdate, update))
        with self.driver.connection() as conn:
            current = self._review(conn, int(review_id))
            if current is None:
                return None
            updated = merge(current, changes)
            if updated is current:
                return current
            sql = (
                "UPDATE reviews SET rating = :rating, title = :title, comment_text = :comment_text, "
                "updated_at = :updated_at WHERE id = :id"
            )
            self.driver.execute(conn, sql, {
                "rating": updated.rating,
                "title": updated.title,
                "comment_text": updated.comment,
                "updated_at": updated.updated_at,
                "id": int(review_id),
            })
            return updated

    def delete_review(self, review_id: str) -> bool:
        if not str(review_id).isdigit():
            return False
        with self.driver.connection() as conn:
            return self.driver.execute(conn, "DELETE FROM reviews WHERE id = :id", {"id": int(review_id)}) > 0
