from typing import Any, Dict
from storefront.payments.utils import to_gateway_amount


class SmsEvent:
    WELCOME = "WELCOME"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_PAYMENT_SUCCESS = "ORDER_PAYMENT_SUCCESS"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_EXPIRED = "ORDER_EXPIRED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ORDER_REFUNDED = "ORDER_REFUNDED"
    PASSWORD_RESET = "PASSWORD_RESET"


SMS_TEMPLATES: Dict[str, str] = {
    SmsEvent.WELCOME: "Hi {customer}, welcome to our store!",
    SmsEvent.ORDER_CONFIRMED: "Hi {customer}, your order {order_number} has been placed. Total: {amount_toman} Toman. Thank you for your purchase.",
    SmsEvent.ORDER_PAYMENT_SUCCESS: "Hi {customer}, payment for order {order_number} succeeded. Paid: {amount_toman} Toman. Payment ref: {ref_id}. Your order is being processed.",
    SmsEvent.ORDER_SHIPPED: "Your order {order_number} has been shipped. Tracking code: {tracking_number}",
    SmsEvent.ORDER_DELIVERED: "Your order {order_number} has been delivered. We hope you enjoy it.",
    SmsEvent.ORDER_CANCELLED: "Hi {customer}, order {order_number} was cancelled and its items were returned to stock. Any charged amount is returned within 3-5 business days.",
    SmsEvent.ORDER_EXPIRED: "Hi {customer}, order {order_number} was cancelled because it was not paid within {expiry_minutes} minutes. You can place it again from your cart.",
    SmsEvent.PAYMENT_FAILED: "Hi {customer}, payment for order {order_number} failed. Reason: {reason}. Please try again or contact support.",
    SmsEvent.ORDER_REFUNDED: "Hi {customer}, order {order_number} was refunded. {amount_toman} Toman will be returned to your account within 3-5 business days.",
    SmsEvent.PASSWORD_RESET: "Your password reset code: {code}. It is valid for 10 minutes.",
}


class _Defaults(dict):
    def __missing__(self, key):
        return "-"


def render_template(event: str, **context: Any) -> str:
    """Render the SMS text for `event` ; unknown events raise KeyError, missing fields print as '-'."""
    template = SMS_TEMPLATES[event]
    ctx = _Defaults(context)
    ctx.setdefault("customer", "customer")
    if "amount" in context and context["amount"] is not None:
        # stored in rial , customers read toman
        ctx.setdefault("amount_toman", f"{to_gateway_amount(context['amount']):,}")
    return template.format_map(ctx)
