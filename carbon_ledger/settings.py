import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env", ".env.production"), extra="ignore")

    ENVIRONMENT: str = "LOCAL"

    # Write primary and optional read replica
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")
    DATABASE_READ_URL: str | None = os.getenv("DATABASE_READ_URL")
    SQLITE_DB_FP: str = "carbon_ledger.db"

    # Outbound notifications, left empty to log notifications instead
    ESDB_CONNECTION_STRING: str = ""
    NOTIFICATION_STREAM: str = "ledger-notifications"

    JWT_SECRET_KEY: str = "secret_key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    LOG_LEVEL: str = "INFO"
    CORS_ALLOWED_ORIGINS: str = ""

    CLAIM_VALIDITY_YEARS: int = 2
    CLAIM_EXPIRY_WARNING_DAYS: int = 30
    ALLOW_SAME_LEVEL_TRANSFERS: bool = True
    SUPPLY_CHAIN_CLAIMS_ENABLED: bool = False
    LOCK_TIMEOUT_MS: int = 5000

    @property
    def database_url(self) -> str:
        """Write database URL, falling back to a local SQLite file."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{self.SQLITE_DB_FP}"

    @property
    def read_database_url(self) -> str:
        """Replica URL if one is configured, otherwise the write database."""
        return self.DATABASE_READ_URL or self.database_url

    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins into a clean list."""
        if not self.CORS_ALLOWED_ORIGINS:
            return []
        return [
            o.strip().strip("'\"").rstrip("/")
            for o in self.CORS_ALLOWED_ORIGINS.split(",")
            if o.strip()
        ]


settings = Settings()
