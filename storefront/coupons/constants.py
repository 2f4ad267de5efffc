from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.coupons")

# orders in these states gave their coupon usage back
RELEASED_ORDER_STATUSES = ("CANCELLED", "REFUNDED", "PARTIALLY_REFUNDED")
