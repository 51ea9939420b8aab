"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.01.00"
    LOG_LEVEL: str = "INFO"

    # Form definitions (file or directory with YAML documents)
    CONFIGS: str = "configs"

    # Storage backend: database | files | dump
    STORAGE: str = "database"
    DATABASE_URL: str = "sqlite:///form.sqlite"
    FILES_PATH: str = "results"

    # Notification queues (tasks buffered before processing)
    WEBHOOKS_BUFFER: int = 100
    AMQP_URL: str = ""  # Empty disables broker notifications
    AMQP_BUFFER: int = 100

    # HTTP
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    DISABLE_XSRF: bool = False  # Useful when forms are exposed as API
    DISABLE_LISTING: bool = False

    # Identity headers set by an authenticating reverse proxy (oauth2-proxy and friends)
    AUTH_HEADERS: bool = False

    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Cloudflare Turnstile captcha (enabled when both keys are set)
    TURNSTILE_SITE_KEY: str = ""
    TURNSTILE_SECRET_KEY: str = ""
    TURNSTILE_TIMEOUT: float = 3.0

    # Rate Limiting (submissions per minute per client, 0 disables)
    RATE_LIMIT_SUBMIT: int = 30

    @property
    def xsrf_enabled(self) -> bool:
        return not self.DISABLE_XSRF

    @property
    def listing_enabled(self) -> bool:
        return not self.DISABLE_LISTING

    @property
    def captcha_enabled(self) -> bool:
        return bool(self.TURNSTILE_SITE_KEY and self.TURNSTILE_SECRET_KEY)

    @property
    def amqp_enabled(self) -> bool:
        return bool(self.AMQP_URL.strip())

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
