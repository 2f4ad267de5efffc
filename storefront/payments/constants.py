from storefront.config.settings import config_settings
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.payments")

ZARINPAL_API_BASE = "https://api.zarinpal.com/pg/v4"
ZARINPAL_SANDBOX_API_BASE = "https://sandbox.zarinpal.com/pg/v4"
ZARINPAL_STARTPAY_BASE = "https://www.zarinpal.com/pg/StartPay"
ZARINPAL_SANDBOX_STARTPAY_BASE = "https://sandbox.zarinpal.com/pg/StartPay"

REQUEST_PATH = "/payment/request.json"
VERIFY_PATH = "/payment/verify.json"

CODE_SUCCESS = 100
CODE_ALREADY_VERIFIED = 101

MERCHANT_ID_MIN_LENGTH = 36
DESCRIPTION_MAX_LENGTH = 255

GATEWAY_UNIT_DIVISOR = int(config_settings.GATEWAY_UNIT_DIVISOR)
GATEWAY_MIN_AMOUNT = int(config_settings.GATEWAY_MIN_AMOUNT)

SIGNATURE_HEADER = "X-ZarinPal-Signature"
