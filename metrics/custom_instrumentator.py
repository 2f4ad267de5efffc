from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /orders/123 -> /orders/{order_id}
    excluded_handlers=["/metrics"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)

ORDERS_EXPIRED = Counter("storefront_orders_expired_total", "Pending orders cancelled by the expiry job")
ORDER_EXPIRY_ERRORS = Counter("storefront_order_expiry_errors_total", "Orders the expiry job failed to cancel")
ORDERS_REFUNDED = Counter("storefront_orders_refunded_total", "Refunds applied by admins", ["kind"])
PAYMENT_OUTCOMES = Counter("storefront_payment_outcomes_total", "Gateway callback and webhook outcomes",
                           ["source", "outcome"])


def record_expired_orders(expired: int, errors: int) -> None:
    if expired:
        ORDERS_EXPIRED.inc(expired)
    if errors:
        ORDER_EXPIRY_ERRORS.inc(errors)


def record_refund(status: str) -> None:
    ORDERS_REFUNDED.labels(kind=status.lower()).inc()


def record_payment_outcome(source: str, outcome: str) -> None:
    PAYMENT_OUTCOMES.labels(source=source, outcome=outcome).inc()
