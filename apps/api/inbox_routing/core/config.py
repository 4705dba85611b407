"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Service-to-service calls (transport webhooks, inbox UI backend, cron)
    INTERNAL_SECRET: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute on the ingestion endpoint)
    RATE_LIMIT_WEBHOOK: int = 600
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Team / funnel / keyword table (JSON). Empty uses the built-in table.
    ROUTING_CONFIG_PATH: str = ""

    # Classifier policy
    ROUTING_MIN_CONFIDENCE: int = 30
    ROUTING_UNMATCHED_CATEGORY: str = "comercial"  # "" reports no category

    # Bounded retries for contended writes
    ASSIGNMENT_MAX_RETRIES: int = 3
    DEAL_SYNC_MAX_RETRIES: int = 3

    # Dedup lookups fail open after this many milliseconds (PostgreSQL only)
    DEDUP_LOOKUP_TIMEOUT_MS: int = 2000

    # Upsert team rows from the registry when the API starts
    SYNC_TEAMS_ON_STARTUP: bool = True

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def unmatched_category(self) -> str | None:
        """Category reported when no keyword matches (None = unclassified)."""
        value = self.ROUTING_UNMATCHED_CATEGORY.strip()
        return value or None


settings = Settings()
