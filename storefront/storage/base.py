"""
Storage capability interface shared by every backend.

Contract (identical for all implementations):
  * ``get_*``    -> entity or ``None``; absence is never an exception
  * ``create_*`` -> fully populated entity; ``ConstraintViolation`` on
                    uniqueness / foreign-key failures
  * ``update_*`` -> shallow merge of the fields the caller set; ``None`` when
                    the id does not exist
  * ``delete_*`` -> ``True`` if something was removed, ``False`` otherwise

Read operations swallow ``BackendUnavailable`` (logged) and return ``None`` or
``[]``; write operations always propagate.
"""

import abc
import functools
import logging
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from storefront.core.security import hash_password, verify_password
from storefront.models.schemas import (
    Category, CategoryCreate, CategoryUpdate, CheckoutItem, Order, OrderCreate,
    OrderItem, OrderItemCreate, Product, ProductCreate, ProductUpdate, Review,
    ReviewCreate, ReviewUpdate, User, UserCreate, UserUpdate, Vendor,
    VendorCreate, VendorUpdate, utcnow,
)
from storefront.storage.errors import BackendUnavailable, ConstraintViolation
from storefront.storage.status import OrderStatusPolicy

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def read_op(default=None):
    """Turn ``BackendUnavailable`` on a read path into a logged empty result."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except BackendUnavailable as e:
                logger.error(f"{type(self).__name__}.{func.__name__} failed, returning empty result: {e}")
                return default() if callable(default) else default
        return wrapper

    return decorator


def coerce(model: Type[M], data: Union[M, Mapping]) -> M:
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        return model.model_validate(data.model_dump(exclude_unset=True))
    return model.model_validate(dict(data))


def merge(entity: M, changes: Mapping) -> M:
    """Shallow merge: keys present in ``changes`` win, everything else is kept."""
    if not changes:
        return entity
    data = entity.model_dump()
    data.update(changes)
    data["updated_at"] = utcnow()
    try:
        return type(entity).model_validate(data)
    except ValidationError as e:
        raise ConstraintViolation(f"{type(entity).__name__} update rejected: {e}") from e


def require_vendor_owner(user: Optional[User], user_id: int):
    """A vendor belongs to exactly one existing user flagged as a vendor."""
    if user is None:
        raise ConstraintViolation(f"user {user_id} does not exist")
    if not user.is_vendor:
        raise ConstraintViolation(f"user {user_id} is not a vendor account")


def changes_of(update: BaseModel) -> dict:
    changes = update.model_dump(exclude_unset=True)
    if changes.get("password") is not None:
        changes["password"] = hash_password(changes["password"])
    return changes


def order_total(lines: Iterable, shipping_fee: Decimal) -> Decimal:
    return sum((line.price * line.quantity for line in lines), Decimal("0")) + shipping_fee


class Storage(abc.ABC):
    """Capability interface. One concrete class per backend."""

    def __init__(self, status_policy: Optional[OrderStatusPolicy] = None):
        self.status_policy = status_policy or OrderStatusPolicy()

    # --- Lifecycle ---

    def initialize(self) -> bool:
        """Connect / migrate. Returns False on failure instead of raising."""
        return True

    def close(self):
        pass

    # --- Users ---

    @abc.abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_email(self, email: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_verification_token(self, token: str) -> Optional[User]: ...

    @abc.abstractmethod
    def get_user_by_reset_token(self, token: str) -> Optional[User]:
        """Expired reset tokens are treated as not found."""

    @abc.abstractmethod
    def create_user(self, user: UserCreate) -> User: ...

    @abc.abstractmethod
    def update_user(self, user_id: int, update: UserUpdate) -> Optional[User]: ...

    @abc.abstractmethod
    def verify_user(self, user_id: int) -> Optional[User]: ...

    @abc.abstractmethod
    def delete_user(self, user_id: int) -> bool: ...

    def authenticate_user(self, username: str, password: str) -> Optional[User]:
        user = self.get_user_by_username(username)
        if user is None or not verify_password(password, user.password):
            return None
        return user

    # --- Categories ---

    @abc.abstractmethod
    def get_categories(self) -> List[Category]: ...

    @abc.abstractmethod
    def get_category(self, category_id: int) -> Optional[Category]: ...

    @abc.abstractmethod
    def create_category(self, category: CategoryCreate) -> Category: ...

    @abc.abstractmethod
    def update_category(self, category_id: int, update: CategoryUpdate) -> Optional[Category]: ...

    @abc.abstractmethod
    def delete_category(self, category_id: int) -> bool: ...

    # --- Products ---

    @abc.abstractmethod
    def get_products(self) -> List[Product]: ...

    @abc.abstractmethod
    def get_featured_products(self) -> List[Product]: ...

    @abc.abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]: ...

    @abc.abstractmethod
    def get_products_by_category(self, category_id: int) -> List[Product]: ...

    @abc.abstractmethod
    def get_products_by_vendor(self, vendor_id: int) -> List[Product]: ...

    @abc.abstractmethod
    def search_products(self, query: str) -> List[Product]:
        """Case-insensitive substring match on name or description."""

    @abc.abstractmethod
    def create_product(self, product: ProductCreate) -> Product: ...

    @abc.abstractmethod
    def update_product(self, product_id: int, update: ProductUpdate) -> Optional[Product]: ...

    @abc.abstractmethod
    def adjust_product_stock(self, product_id: int, delta: int) -> Optional[Product]:
        """Add ``delta`` (may be negative) to stock; stock never drops below zero."""

    @abc.abstractmethod
    def delete_product(self, product_id: int) -> bool: ...

    # --- Vendors ---

    @abc.abstractmethod
    def get_vendors(self) -> List[Vendor]: ...

    @abc.abstractmethod
    def get_vendor(self, vendor_id: int) -> Optional[Vendor]: ...

    @abc.abstractmethod
    def get_vendor_by_user_id(self, user_id: int) -> Optional[Vendor]: ...

    @abc.abstractmethod
    def create_vendor(self, vendor: VendorCreate) -> Vendor: ...

    @abc.abstractmethod
    def update_vendor(self, vendor_id: int, update: VendorUpdate) -> Optional[Vendor]: ...

    @abc.abstractmethod
    def delete_vendor(self, vendor_id: int) -> bool: ...

    # --- Orders ---

    @abc.abstractmethod
    def get_orders(self) -> List[Order]: ...

    @abc.abstractmethod
    def get_order(self, order_id: int) -> Optional[Order]: ...

    @abc.abstractmethod
    def get_orders_by_user(self, user_id: int) -> List[Order]: ...

    @abc.abstractmethod
    def create_order(self, order: OrderCreate) -> Order: ...

    @abc.abstractmethod
    def update_order_status(self, order_id: int, status: str) -> Optional[Order]: ...

    @abc.abstractmethod
    def update_payment_status(self, order_id: int, payment_status: str) -> Optional[Order]: ...

    @abc.abstractmethod
    def delete_order(self, order_id: int) -> bool:
        """Removes the order together with its items."""

    @abc.abstractmethod
    def place_order(self, order: OrderCreate, items: List[CheckoutItem], decrement_stock: bool = True) -> Order:
        """
        Create an order and its items atomically.

        Item prices are copied from the products inside the same transaction and
        ``total`` is recomputed as sum(price * quantity) + shipping_fee. Any
        failure leaves no order, no items and untouched stock.
        """

    # --- Order items ---

    @abc.abstractmethod
    def get_order_items(self, order_id: int) -> List[OrderItem]: ...

    @abc.abstractmethod
    def create_order_item(self, item: OrderItemCreate) -> OrderItem:
        """``item.price`` defaults to the product's current price."""

    # --- Reviews ---

    @abc.abstractmethod
    def get_reviews(self, product_id: int) -> List[Review]: ...

    @abc.abstractmethod
    def get_reviews_by_user(self, user_id: int) -> List[Review]: ...

    @abc.abstractmethod
    def get_review(self, review_id: str) -> Optional[Review]: ...

    @abc.abstractmethod
    def create_review(self, review: ReviewCreate) -> Review: ...

    @abc.abstractmethod
    def update_review(self, review_id: str, update: ReviewUpdate) -> Optional[Review]: ...

    @abc.abstractmethod
    def delete_review(self, review_id: str) -> bool: ...
