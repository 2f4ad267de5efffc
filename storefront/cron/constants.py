from storefront.config.settings import config_settings
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.cron")

EXPIRY_BATCH_SIZE = int(config_settings.EXPIRY_BATCH_SIZE)
EXPIRING_SOON_MINUTES = int(config_settings.EXPIRING_SOON_MINUTES)
EXPIRED_CANCEL_REASON = "payment window expired"
