import logging
from contextlib import contextmanager

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, Numeric,
    String, Text, create_engine, event, exc,
)
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from storefront.models.schemas import DEFAULT_COUNTRY, utcnow
from storefront.storage.errors import BackendUnavailable, ConstraintViolation, StorageError, StorageTimeout

logger = logging.getLogger(__name__)

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    first_name = Column(String(100), default="")
    last_name = Column(String(100), default="")
    phone_number = Column(String(50), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=True)
    role = Column(String(20), default="customer", nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_token = Column(String(255), index=True, nullable=True)
    reset_token = Column(String(255), index=True, nullable=True)
    reset_token_expires = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class VendorRow(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    business_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    country = Column(String(100), default=DEFAULT_COUNTRY, nullable=False)
    phone = Column(String(50), nullable=True)
    website = Column(String(255), nullable=True)
    business_email = Column(String(255), nullable=True)
    tags = Column(JSON, default=list, nullable=False)
    logo_url = Column(String(500), nullable=True)
    banner_url = Column(String(500), nullable=True)
    rating = Column(Float, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    stock = Column(Integer, default=0, nullable=False)
    image_url = Column(String(500), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), index=True, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), index=True, nullable=False)
    is_organic = Column(Boolean, default=False, nullable=False)
    is_fresh_picked = Column(Boolean, default=False, nullable=False)
    is_local = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    weight_kg = Column(Float, nullable=True)
    nutritional_info = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class OrderRow(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    total = Column(Numeric(12, 2), default=0, nullable=False)
    shipping_address = Column(String(255), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_state = Column(String(100), nullable=True)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_country = Column(String(100), default=DEFAULT_COUNTRY, nullable=False)
    shipping_method = Column(String(50), nullable=True)
    shipping_fee = Column(Numeric(10, 2), default=0, nullable=False)
    payment_method = Column(String(50), nullable=True)
    payment_status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


def make_engine(database_url: str, call_timeout: float = 10.0):
    """
    Engine with the per-call timeout applied the way each dialect supports it.

    SQLite gets foreign keys switched on; in-memory SQLite shares one connection
    across threads so every session sees the same database.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": call_timeout}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    kwargs = {"pool_pre_ping": True, "pool_timeout": call_timeout}
    if url.get_backend_name() == "postgresql":
        kwargs["connect_args"] = {
            "connect_timeout": max(1, int(call_timeout)),
            "options": f"-c statement_timeout={int(call_timeout * 1000)}",
        }
    return create_engine(url, **kwargs)


def _is_timeout(e: Exception) -> bool:
    message = str(getattr(e, "orig", e)).lower()
    return "timeout" in message or "timed out" in message


@contextmanager
def translate_errors():
    """Re-raise SQLAlchemy failures as storage errors, keeping the native one as cause."""
    try:
        yield
    except exc.IntegrityError as e:
        raise ConstraintViolation(str(e.orig)) from e
    except exc.TimeoutError as e:
        raise StorageTimeout(f"Connection pool timed out: {e}") from e
    except (exc.OperationalError, exc.InterfaceError) as e:
        if _is_timeout(e):
            raise StorageTimeout(str(e.orig)) from e
        raise BackendUnavailable(str(e.orig)) from e
    except exc.SQLAlchemyError as e:
        logger.error(f"Unexpected database error: {e}", exc_info=True)
        raise StorageError(str(e)) from e
