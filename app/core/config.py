from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "Meeting Billing Service"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"  # "development", "staging", "production"

    # Database (Postgres in production, SQLite file for local dev)
    DATABASE_URL: str = "sqlite:///./billing.db"

    # Dodo Payments
    DODO_API_KEY: str = ""  # Required: the webhook client refuses to build without it
    DODO_WEBHOOK_SECRET: str = ""  # Standard Webhooks secret, "whsec_..."
    DODO_ENVIRONMENT: str = "test_mode"  # "test_mode" or "live"
    DODO_PRO_PRODUCT_ID: str = ""  # Product ID for the Pro plan
    DODO_ENTERPRISE_PRODUCT_ID: str = ""  # Product ID for the Enterprise plan

    # Error tracking
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.1

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra="ignore")


settings = Settings()
