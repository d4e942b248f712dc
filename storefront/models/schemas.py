"""
Entity schemas for the storefront.

Every entity has three shapes:
  * ``<Entity>Create``  - payload accepted by ``create_*``
  * ``<Entity>Update``  - partial payload accepted by ``update_*``; only the
    fields explicitly set by the caller are applied
  * ``<Entity>``        - the stored record returned by every backend
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, ClassVar, FrozenSet, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

DEFAULT_COUNTRY = "Sri Lanka"


def utcnow() -> datetime:
    # Naive UTC so timestamps compare equal across SQL, Oracle and Mongo round trips
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Aware inputs ("...Z", "+02:00") are converted; naive values are taken as UTC already
UtcDatetime = Annotated[datetime, AfterValidator(as_naive_utc)]


class PartialUpdate(BaseModel):
    """
    Base for the ``*Update`` payloads.

    Fields listed in ``NOT_NULL`` may be left out but not sent as null, since
    the stored entity has no empty value for them.
    """

    NOT_NULL: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def reject_nulls(self):
        nulls = sorted(name for name in self.model_fields_set & self.NOT_NULL if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self


# --- Users ---

class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    role: str = "customer"
    is_verified: bool = False
    verification_token: Optional[str] = None
    reset_token: Optional[str] = None
    reset_token_expires: Optional[UtcDatetime] = None


class UserCreate(UserBase):
    password: str = Field(..., min_length=6)


class UserUpdate(PartialUpdate):
    NOT_NULL = frozenset({"username", "email", "password", "first_name", "last_name", "role", "is_verified"})

    username: Optional[str] = Field(None, min_length=3, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    role: Optional[str] = None
    is_verified: Optional[bool] = None
    verification_token: Optional[str] = None
    reset_token: Optional[str] = None
    reset_token_expires: Optional[UtcDatetime] = None


class User(UserBase):
    id: int
    password: str
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @property
    def is_vendor(self) -> bool:
        return self.role == "vendor"


# --- Categories ---

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None


class CategoryUpdate(PartialUpdate):
    NOT_NULL = frozenset({"name"})

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = None


class Category(CategoryCreate):
    id: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


# --- Products ---

class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(0, ge=0)
    image_url: Optional[str] = None
    category_id: int
    vendor_id: int
    is_organic: bool = False
    is_fresh_picked: bool = False
    is_local: bool = True
    is_featured: bool = False
    weight_kg: Optional[float] = None
    nutritional_info: Optional[str] = None


class ProductUpdate(PartialUpdate):
    NOT_NULL = frozenset({
        "name", "price", "stock", "category_id", "vendor_id",
        "is_organic", "is_fresh_picked", "is_local", "is_featured",
    })

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(None, ge=0)
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    vendor_id: Optional[int] = None
    is_organic: Optional[bool] = None
    is_fresh_picked: Optional[bool] = None
    is_local: Optional[bool] = None
    is_featured: Optional[bool] = None
    weight_kg: Optional[float] = None
    nutritional_info: Optional[str] = None


class Product(ProductCreate):
    id: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


# --- Vendors ---

class VendorCreate(BaseModel):
    user_id: int
    business_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = DEFAULT_COUNTRY
    phone: Optional[str] = None
    website: Optional[str] = None
    business_email: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    rating: float = Field(0, ge=0, le=5)


class VendorUpdate(PartialUpdate):
    NOT_NULL = frozenset({"business_name", "country", "tags", "rating"})

    business_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    business_email: Optional[str] = None
    tags: Optional[List[str]] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)


class Vendor(VendorCreate):
    id: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


# --- Orders ---

class OrderCreate(BaseModel):
    user_id: int
    status: str = "pending"
    total: Decimal = Field(Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_state: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: str = DEFAULT_COUNTRY
    shipping_method: Optional[str] = None
    shipping_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    payment_method: Optional[str] = None
    payment_status: str = "pending"


class Order(OrderCreate):
    id: int
    created_at: UtcDatetime
    updated_at: UtcDatetime


class OrderItemCreate(BaseModel):
    order_id: int
    product_id: int
    quantity: int = Field(..., ge=1)
    # Filled from the product's current price when omitted
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)


class OrderItem(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int = Field(..., ge=1)
    price: Decimal
    created_at: UtcDatetime


class CheckoutItem(BaseModel):
    product_id: int
    quantity: int = Field(..., ge=1)


# --- Reviews ---

class ReviewCreate(BaseModel):
    product_id: int
    user_id: int
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = None
    comment: str = ""


class ReviewUpdate(PartialUpdate):
    NOT_NULL = frozenset({"rating", "comment"})

    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = None
    comment: Optional[str] = None


class Review(ReviewCreate):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    created_at: UtcDatetime
    updated_at: UtcDatetime


# --- API payloads ---

class CheckoutRequest(BaseModel):
    order: OrderCreate
    items: List[CheckoutItem] = Field(..., min_length=1)
    decrement_stock: bool = True


class StockAdjustment(BaseModel):
    delta: int


class StatusChange(BaseModel):
    status: str


class PaymentStatusChange(BaseModel):
    payment_status: str


class RegisterRequest(BaseModel):
    """Self-service sign-up. Verification, tokens and staff roles are never taken from the client."""

    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = ""
    last_name: str = ""
    phone_number: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    role: Literal["customer", "vendor"] = "customer"


class LoginRequest(BaseModel):
    username: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=6)
