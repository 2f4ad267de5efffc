from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from storefront.schema.full_schema import OrderStatus, PaymentMethod


class OrderItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(..., alias="productId")
    variant_id: Optional[int] = Field(None, alias="variantId")
    quantity: int = Field(..., ge=1, le=1000)


class OrderCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    items: List[OrderItemIn] = Field(..., min_length=1)
    payment_method: PaymentMethod = Field(PaymentMethod.ZARINPAL, alias="paymentMethod")
    coupon_code: Optional[str] = Field(None, alias="couponCode", max_length=64)
    customer_phone: Optional[str] = Field(None, alias="customerPhone", max_length=20)
    customer_email: Optional[str] = Field(None, alias="customerEmail", max_length=320)
    customer_note: Optional[str] = Field(None, alias="customerNote", max_length=1000)


class OrderCancelIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: OrderStatus
    tracking_number: Optional[str] = Field(None, alias="trackingNumber", max_length=128)


class OrderRefundIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reason: Optional[str] = Field(None, max_length=500)
    refund_amount: Optional[int] = Field(None, alias="refundAmount", description="Rial ; defaults to the order total")
    notify_customer: bool = Field(True, alias="notifyCustomer")
