from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.notifications")

# kavenegar "return.status" values
KAVENEGAR_OK = 200
# statuses worth retrying ; everything else is a permanent rejection (bad key , credit , receptor)
KAVENEGAR_TRANSIENT_STATUSES = (500,)
