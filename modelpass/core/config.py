from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "modelpass"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/modelpass.db"
    REDIS_URL: str = "redis://localhost:6379"
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Caller bearer tokens are issued by the auth service; we only verify them
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Metering
    USAGE_RATE_PER_THOUSAND_UNITS: Decimal = Decimal("0.001")
    USAGE_RATE_PER_SECOND: Decimal = Decimal("0.0001")
    TOKENS_PER_WORD: Decimal = Decimal("1.3")
    REVENUE_SHARE_FRACTION: Decimal = Decimal("0.8")

    # Quota ceilings applied when a plan leaves them unset
    DEFAULT_REQUESTS_PER_MINUTE: int = 60
    DEFAULT_REQUESTS_PER_MONTH: int = 10000

    # Recurring subscriptions bill on a fixed cycle
    RECURRING_CYCLE_DAYS: int = 30

    # Inference
    INFERENCE_PROVIDER: str = "http"  # "http" or "echo"
    INFERENCE_BASE_URL: str = ""
    INFERENCE_API_KEY: str = ""
    INFERENCE_TIMEOUT_SECONDS: float = 30.0

    # Helio pay links
    helio_api_base: str = "https://api.hel.io/v1"
    helio_api_key: str = ""
    helio_api_secret: str = ""
    helio_webhook_secret: str = ""

    # Operator-initiated redelivery (HMAC signed)
    manual_webhook_secret: str = ""

    # Bounded polling when a delivery arrives before the payment settles
    SETTLEMENT_POLL_ATTEMPTS: int = 3
    SETTLEMENT_POLL_INTERVAL_SECONDS: float = 1.0

    # A PROCESSING claim older than this is treated as abandoned
    SETTLEMENT_CLAIM_LEASE_SECONDS: int = 300

    @property
    def inference_enabled(self) -> bool:
        return bool(self.INFERENCE_BASE_URL)


settings = Settings()
