from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid6 import uuid7
from storefront.common.utils import as_utc, now
from storefront.orders.constants import ORDER_NUMBER_PREFIX, SHIPPING_FLAT_FEE, TAX_RATE_PERCENT
from storefront.schema.full_schema import OrderItem, Orders


def generate_order_number(year: Optional[int] = None) -> str:
    # tail of a uuid7 is random , the head is the timestamp
    year = year or now().year
    return f"{ORDER_NUMBER_PREFIX}-{year}-{uuid7().hex[-8:].upper()}"


def compute_order_totals(lines: Iterable[Dict[str, Any]], discount: int = 0,
                         tax_rate_percent: int = TAX_RATE_PERCENT,
                         shipping_fee: int = SHIPPING_FLAT_FEE) -> Dict[str, int]:
    subtotal = sum(int(l["unit_price"]) * int(l["quantity"]) for l in lines)
    discount = min(int(discount), subtotal)
    taxable = subtotal - discount
    tax = taxable * int(tax_rate_percent) // 100
    shipping = int(shipping_fee)
    total = taxable + tax + shipping

    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "discount": discount,
        "total": total,
    }


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


def serialize_order_item(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "productId": item.product_id,
        "variantId": item.variant_id,
        "name": item.name,
        "sku": item.sku,
        "image": item.image,
        "unitPrice": item.unit_price,
        "quantity": item.quantity,
        "totalPrice": item.total_price,
    }


def serialize_order(order: Orders, items: Optional[List[OrderItem]] = None) -> Dict[str, Any]:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "paymentStatus": order.payment_status,
        "paymentMethod": order.payment_method,
        "subtotal": order.subtotal,
        "taxAmount": order.tax_amount,
        "shippingAmount": order.shipping_amount,
        "discountAmount": order.discount_amount,
        "totalAmount": order.total_amount,
        "refundedAmount": order.refunded_amount,
        "couponCode": order.coupon_code,
        "trackingNumber": order.tracking_number,
        "paymentRefId": order.payment_ref_id,
        "expiresAt": _iso(order.expires_at),
        "shippedAt": _iso(order.shipped_at),
        "deliveredAt": _iso(order.delivered_at),
        "paymentDate": _iso(order.payment_date),
        "createdAt": _iso(order.created_at),
    }
    if items is not None:
        data["items"] = [serialize_order_item(it) for it in items]
    return data


def order_contact(user_phone: Optional[str], customer_phone: Optional[str], first_name: Optional[str] = None,
                  last_name: Optional[str] = None) -> Tuple[Optional[str], Dict[str, Any]]:
    """Receptor and sms context for a customer: account phone first , the checkout phone otherwise."""
    context: Dict[str, Any] = {}
    customer = " ".join(p for p in (first_name, last_name) if p)
    if customer:
        context["customer"] = customer
    return user_phone or customer_phone, context
