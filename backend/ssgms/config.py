from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://ssgms:ssgms_secret@db:5432/ssgms"
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Session tokens are issued by the identity provider and signed with its JWT secret
    JWT_SECRET: str = "super-secret-jwt-token-with-at-least-32-characters-long"
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # Service-role access for the admin API and storage; never sent to browsers
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    IDENTITY_TIMEOUT_SECONDS: float = 30.0

    DOCUMENTS_BUCKET: str = "grant-documents"
    DEFAULT_REDIRECT_URL: str | None = None
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
