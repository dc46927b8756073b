from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List, Optional


def parse_comma_list(v):
    """Parse comma-separated string into list. 'none' means empty."""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        if v.strip().lower() == 'none':
            return []
        return [x.strip() for x in v.split(',') if x.strip() and x.strip().lower() != 'none']
    return []


class Settings(BaseSettings):
    # Server
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3001
    PUBLIC_API_URL: str = "http://localhost:3001"
    CORS_ORIGINS: Optional[str] = None  # comma-separated, empty means "*"

    # Supervisor
    MAX_RESTART_ATTEMPTS: int = 5
    RESTART_DELAY_SECONDS: float = 5.0

    # App Settings
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    ENVIRONMENT: str = "development"
    SENTRY_DSN: Optional[str] = None
    SENTRY_DEBUG: bool = False

    @field_validator('API_PORT', 'MAX_RESTART_ATTEMPTS', mode='before')
    @classmethod
    def parse_optional_int(cls, v, info):
        if v is None or v == '':
            defaults = {'API_PORT': 3001, 'MAX_RESTART_ATTEMPTS': 5}
            return defaults.get(info.field_name)
        return int(v)

    # Database
    DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None

    # Shared secrets for machine callers
    INDEXER_API_KEY: Optional[str] = None
    ADMIN_API_KEY: Optional[str] = None

    # Discord OAuth
    DISCORD_CLIENT_ID: Optional[str] = None
    DISCORD_CLIENT_SECRET: Optional[str] = None
    DISCORD_REDIRECT_URI: Optional[str] = None  # used by /discord/membership
    GORILLIONAIRE_GUILD_ID: Optional[str] = None
    DISCORD_XP_WEBHOOK_URL: Optional[str] = None
    OAUTH_STATE_TTL: int = 600

    # Third-party data APIs
    BLOCKVISION_API_KEY: Optional[str] = None
    BLOCKVISION_BASE_URL: str = "https://api.blockvision.org/v2/monad"
    CODEX_API_KEY: Optional[str] = None
    CODEX_BASE_URL: str = "https://graph.codex.io/graphql"

    # AI
    OPENAI_API_KEY: Optional[str] = None
    AI_MODEL: Optional[str] = None
    AI_TEMPERATURE: float = 0.5
    EMBEDDING_MODEL: str = "text-embedding-ada-002"

    # Vector store (Supabase PostgREST)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_API_KEY: Optional[str] = None
    VECTOR_TABLE: str = "documents"
    VECTOR_MATCH_FUNCTION: str = "match_documents"
    VECTOR_MAX_DOCUMENTS: int = 500

    # Notifications
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None
    SIGNALS_PAGE_URL: str = "https://app.gorillionai.re/signals"

    # Feature Flags
    ENABLE_JOBS: bool = True
    ENABLE_SIGNAL_GENERATOR: bool = True

    # Scheduling
    PRICE_INTERVAL_SECONDS: int = 300
    SIGNAL_INTERVAL_SECONDS: int = 600
    INGEST_INTERVAL_SECONDS: int = 600
    TOKEN_HOLDERS_TIME: str = "00:00"  # HH:MM, UTC
    SSE_KEEPALIVE_SECONDS: int = 15

    @property
    def cors_origins_list(self) -> List[str]:
        return parse_comma_list(self.CORS_ORIGINS) or ["*"]

    @property
    def discord_callback_uri(self) -> str:
        return f"{self.PUBLIC_API_URL.rstrip('/')}/social/discord/callback"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
