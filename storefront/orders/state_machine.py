from typing import Dict, FrozenSet, Optional
from storefront.common.custom_exceptions import StateConflict
from storefront.schema.full_schema import OrderStatus, PaymentStatus

S = OrderStatus

REFUND_TARGETS: FrozenSet[str] = frozenset({S.REFUNDED.value, S.PARTIALLY_REFUNDED.value})

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING.value: frozenset({S.CONFIRMED.value, S.CANCELLED.value}),
    S.CONFIRMED.value: frozenset({S.PROCESSING.value, S.CANCELLED.value}) | REFUND_TARGETS,
    S.PROCESSING.value: frozenset({S.SHIPPED.value}) | REFUND_TARGETS,
    S.SHIPPED.value: frozenset({S.DELIVERED.value}) | REFUND_TARGETS,
    # delivered is terminal for fulfilment , only an admin refund moves it
    S.DELIVERED.value: REFUND_TARGETS,
    S.CANCELLED.value: frozenset(),
    S.REFUNDED.value: frozenset(),
    S.PARTIALLY_REFUNDED.value: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    """
    No fulfilment move is left. DELIVERED counts as terminal although an admin
    refund can still move it to REFUNDED or PARTIALLY_REFUNDED.
    """
    return not (ALLOWED_TRANSITIONS.get(status, frozenset()) - REFUND_TARGETS)


def assert_transition(current: str, target: str, payment_status: Optional[str] = None) -> None:
    """Raise StateConflict unless `current -> target` is allowed for an order in `payment_status`."""
    if not can_transition(current, target):
        raise StateConflict(
            f"Order cannot move from {current} to {target}",
            details={"from": current, "to": target},
            code="INVALID_TRANSITION",
        )

    if target in REFUND_TARGETS and payment_status != PaymentStatus.PAID.value:
        raise StateConflict("Only paid orders can be refunded",
                            details={"payment_status": payment_status}, code="ORDER_NOT_PAID")

    if target == S.CANCELLED.value and payment_status == PaymentStatus.PAID.value:
        raise StateConflict("Paid orders must be refunded, not cancelled",
                            details={"payment_status": payment_status}, code="ORDER_PAID")
