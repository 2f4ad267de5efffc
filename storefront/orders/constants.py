from storefront.config.settings import config_settings
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.orders")

ORDER_EXPIRY_MINUTES = int(config_settings.ORDER_EXPIRY_MINUTES)
TAX_RATE_PERCENT = int(config_settings.TAX_RATE_PERCENT)
SHIPPING_FLAT_FEE = int(config_settings.SHIPPING_FLAT_FEE)

ORDER_NUMBER_PREFIX = "ORD"
