from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    redis_db: int = 0

    # API
    api_v1_str: str = "/api/v1"
    app_url: str = "http://localhost:3000"

    # Auth
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 7
    auth_cookie_name: str = "auth_token"

    # Environment
    environment: str = "development"
    debug: bool = True

    # Rate limiting
    rate_limit_enabled: bool = True

    # Scheduler / cron triggers
    cron_secret: Optional[str] = None
    cron_api_key: Optional[str] = None
    scheduler_api_key: Optional[str] = None
    scheduler_lock_timeout_seconds: int = 300
    reminder_window_days: int = 7
    free_plan_period_days: int = 365

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # Flutterwave
    flutterwave_secret_key: Optional[str] = None
    flutterwave_public_key: Optional[str] = None
    flutterwave_webhook_secret: Optional[str] = None
    flutterwave_base_url: str = "https://api.flutterwave.com"

    # NOWPayments
    nowpayments_api_key: Optional[str] = None
    nowpayments_ipn_secret: Optional[str] = None
    nowpayments_base_url: str = "https://api.nowpayments.io/v1"

    # Email (SMTP)
    email_enabled: bool = True
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = "noreply@tradingacademy.com"

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
