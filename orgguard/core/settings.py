from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Authentication (sessions are minted by the external auth service)
    JWT_SECRET: str | None = None
    AUTH_JWKS_URL: str | None = None
    JWT_AUDIENCE: str | None = None

    # Persistence
    DATABASE_URL: str | None = None
    STORE_BACKEND: str = "memory"  # "memory" or "prisma"

    # Application URLs
    APP_BASE_URL: str = "http://localhost:8001"  # Default for development

    # Organization policy
    INVITATION_EXPIRES_IN_DAYS: int = 7
    ORGANIZATION_LIMIT: int = 5  # Memberships a user may hold when creating
    ORGANIZATION_ID_PARAMS: list[str] = [
        "organization_id",
        "org_id",
        "organizationId",
        "orgId",
    ]
    USE_ACTIVE_ORGANIZATION_HINT: bool = False

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )


settings = Settings()
