import enum
from datetime import datetime
from typing import List, Optional
from sqlalchemy import JSON, BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Text, text
from sqlmodel import Column, SQLModel, Field, String
from storefront.common.utils import now


class UserRole(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class Users(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    first_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    last_name: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True, unique=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True, unique=True))
    role: str = Field(default=UserRole.CUSTOMER.value, sa_column=Column(String(32), nullable=False, server_default=UserRole.CUSTOMER.value))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))

# --------------------------------------------------------------------------------------------------------------------------------

class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(200), unique=True, nullable=False))


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    sku: str = Field(sa_column=Column(String(128), nullable=False, unique=True))
    image: Optional[str] = Field(default=None, sa_column=Column(String(1024), nullable=True))
    price: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))  # rial
    category_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("category.id", ondelete="SET NULL"), index=True))
    # mutable inventory counter , is_in_stock is kept in sync with it on every write
    stock_quantity: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    is_in_stock: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, server_default=text("false")))
    low_stock_threshold: int = Field(default=5, sa_column=Column(Integer, nullable=False, server_default=text("5")))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default=text("true")))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
    )


class ProductVariant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    sku: str = Field(sa_column=Column(String(128), nullable=False, unique=True))
    price: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))  # falls back to product price
    stock_quantity: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    is_in_stock: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, server_default=text("false")))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_variant_stock_non_negative"),
    )

# --------------------------------------------------------------------------------------------------------------------------------

class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class CouponScope(str, enum.Enum):
    ALL = "ALL"
    CATEGORIES = "CATEGORIES"
    PRODUCTS = "PRODUCTS"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(sa_column=Column(String(64), unique=True, nullable=False, index=True))  # stored upper-cased
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    discount_type: str = Field(default=DiscountType.PERCENTAGE.value, sa_column=Column(String(32), nullable=False))
    discount_value: int = Field(sa_column=Column(BigInteger, nullable=False))  # percent or rial
    minimum_amount: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    maximum_discount: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))
    usage_limit: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))  # null -> unlimited
    usage_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default=text("0")))
    user_usage_limit: int = Field(default=1, sa_column=Column(Integer, nullable=False, server_default=text("1")))
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, server_default=text("true")))
    valid_from: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    valid_until: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    applicable_to: str = Field(default=CouponScope.ALL.value, sa_column=Column(String(32), nullable=False))
    category_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    product_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))

    __table_args__ = (
        CheckConstraint("usage_count >= 0", name="ck_coupon_usage_non_negative"),
    )

# --------------------------------------------------------------------------------------------------------------------------------

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentMethod(str, enum.Enum):
    ZARINPAL = "ZARINPAL"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"


# User --> Orders (1:many)
class Orders(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_number: str = Field(sa_column=Column(String(32), unique=True, nullable=False, index=True))
    user_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(32), nullable=False, index=True))
    payment_status: str = Field(default=PaymentStatus.PENDING.value, sa_column=Column(String(32), nullable=False, index=True))
    payment_method: str = Field(default=PaymentMethod.ZARINPAL.value, sa_column=Column(String(32), nullable=False))
    # amounts in rial
    subtotal: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    tax_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    shipping_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    discount_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    total_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    refunded_amount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, server_default=text("0")))
    # weak reference , the code is snapshotted so history survives coupon deletion
    coupon_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("coupon.id", ondelete="SET NULL"), nullable=True, index=True))
    coupon_code: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    customer_phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True))
    customer_email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True))
    customer_note: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    # gateway authority token , the callback looks the order up by it
    payment_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, unique=True))
    payment_ref_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    payment_date: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    tracking_number: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    cancel_reason: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    expires_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    shipped_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    delivered_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    # bumped by every guarded status write
    version: int = Field(default=1, sa_column=Column(Integer, nullable=False, server_default=text("1")))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        # expiry scan: payment_status = PENDING and expires_at < now and shipped_at is null
        Index("ix_orders_expiry_scan", "payment_status", "expires_at"),
    )


# Order --> OrderItems (1:many)
# snapshot of the catalog entry at purchase time ; product/variant ids are weak refs for relation only
class OrderItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("product.id", ondelete="SET NULL"), nullable=True))
    variant_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("productvariant.id", ondelete="SET NULL"), nullable=True))
    # survives the variant fk being nulled , a variant line never falls back to the product counter
    is_variant_line: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, server_default=text("false")))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    sku: str = Field(sa_column=Column(String(128), nullable=False))
    image: Optional[str] = Field(default=None, sa_column=Column(String(1024), nullable=True))
    unit_price: int = Field(sa_column=Column(BigInteger, nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    total_price: int = Field(sa_column=Column(BigInteger, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
