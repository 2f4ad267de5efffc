from storefront.config.settings import config_settings
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.auth")

ACCESS_TOKEN_TTL_SECONDS = int(config_settings.ACCESS_TOKEN_EXPIRE_MINUTES) * 60

ADMIN_ROLES = ("ADMIN", "SUPER_ADMIN")
