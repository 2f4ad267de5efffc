from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"
    DB_ECHO: bool = False

    JWT_SECRET: str = "change-me"
    JWT_ALGO: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # zarinpal
    ZARINPAL_MERCHANT_ID: Optional[str] = None
    ZARINPAL_SANDBOX: bool = True
    ZARINPAL_WEBHOOK_SECRET: Optional[str] = None
    ZARINPAL_TIMEOUT_SECONDS: float = 10.0
    ZARINPAL_CALLBACK_URL: Optional[str] = None   # defaults to this service's callback route
    GATEWAY_UNIT_DIVISOR: int = 10          # rial -> toman
    GATEWAY_MIN_AMOUNT: int = 1000          # toman
    GATEWAY_MAX_RETRIES: int = 3
    GATEWAY_BACKOFF_BASE: float = 0.5

    # kavenegar
    KAVENEGAR_API_KEY: Optional[str] = None
    KAVENEGAR_SENDER: str = "2000660110"
    KAVENEGAR_BASE_URL: str = "https://api.kavenegar.com/v1"
    SKIP_SMS_IN_DEV: bool = False
    NOTIFY_WORKERS: int = 2
    NOTIFY_QUEUE_SIZE: int = 1000
    NOTIFY_MAX_RETRIES: int = 3

    CRON_SECRET: Optional[str] = None
    APP_URL: str = "http://localhost:3000"

    ORDER_EXPIRY_MINUTES: int = 30
    EXPIRY_BATCH_SIZE: int = 100
    EXPIRING_SOON_MINUTES: int = 5
    TAX_RATE_PERCENT: int = 0
    SHIPPING_FLAT_FEE: int = 0

    METRICS_ENABLED: bool = False

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
