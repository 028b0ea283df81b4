"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Tiffin Subscription API"
    VERSION: str = "0.1.0"
    API_PREFIX: str = "/api"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Database - REQUIRED
    DATABASE_URL: str

    # Security - REQUIRED (no defaults for sensitive values)
    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Razorpay - key secret is REQUIRED for signature verification
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_TIMEOUT_SECONDS: float = 15.0
    CURRENCY: str = "INR"

    # CORS
    CORS_ORIGINS: list[str] = []

    # Ordering policy
    MEAL_ORDER_CUTOFF_HOURS: int = 12
    EVENT_ORDER_LEAD_HOURS: int = 48
    LUNCH_DEADLINE_HOUR: int = 12
    DINNER_DEADLINE_HOUR: int = 20

    # Cancellation policy
    CANCELLATION_FEE_PERCENT: int = 20
    SINGLE_NO_REFUND_WINDOW_HOURS: int = 2
    EVENT_NO_REFUND_WINDOW_HOURS: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
