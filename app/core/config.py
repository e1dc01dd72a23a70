from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "TravelBook API"
    LOG_LEVEL: str = "INFO"
    # Comma-separated origins for CORS (e.g. https://travelbook.example,https://admin.travelbook.example). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""

    SECRET_KEY: str
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"

    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "bookings@travelbook.local"

    SENDGRID_API_KEY: str = ""
    SENDGRID_FROM_EMAIL: str = ""

    CLIENT_URL: str = "http://localhost:3000"  # SPA base, target of post-checkout redirects
    API_PUBLIC_URL: str = "http://localhost:8000"  # gateway success redirect lands here

    # Stripe hosted checkout
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "usd"

    # Manual bank transfer instructions shown for pay-later bookings
    BANK_ACCOUNT_NAME: str = "Travel Agency"
    BANK_ACCOUNT_NUMBER: str = "1234567890"
    BANK_NAME: str = "Example Bank"


settings = Settings()
