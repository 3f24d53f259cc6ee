from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Content Autopilot"
    app_env: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "content_autopilot"
    postgres_user: str = "content_autopilot"
    postgres_password: str = "content_autopilot"

    redis_host: str = "localhost"
    redis_port: int = 6379

    database_url: str | None = None
    redis_url: str | None = None
    frontend_origin: str = "http://localhost:3000"
    additional_frontend_origins: str = ""
    worker_heartbeat_key: str = "worker:heartbeat"
    worker_heartbeat_ttl_seconds: int = 45

    queue_lock_backend: str = "redis"
    queue_lock_ttl_seconds: int = 60
    queue_lock_wait_seconds: float = 5.0

    cron_secret: str | None = None
    operator_password: str | None = None
    jwt_secret_key: str = "change_this_in_production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24 * 30
    auth_cookie_name: str = "content-autopilot-session"
    auth_cookie_secure: bool = False
    auth_cookie_samesite: str = "lax"

    ai_provider: str = "anthropic"
    ai_timeout_seconds: float = 55.0
    ai_max_retries: int = 1
    ai_max_tokens: int = 5000
    ai_temperature: float = 0.7
    ai_author_name: str = "the operator"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-5-20250929"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_version: str = "2023-06-01"

    max_linkedin_drafts: int = 3
    max_blog_drafts: int = 2
    max_total_drafts: int = 5

    publish_timeout_seconds: float = 30.0
    linkedin_access_token: str | None = None
    linkedin_person_urn: str | None = None
    linkedin_ugc_posts_url: str = "https://api.linkedin.com/v2/ugcPosts"

    gmail_client_id: str | None = None
    gmail_client_secret: str | None = None
    gmail_refresh_token: str | None = None
    gmail_token_url: str = "https://oauth2.googleapis.com/token"
    gmail_api_base_url: str = "https://gmail.googleapis.com/gmail/v1/users/me"
    gmail_ingest_query: str = "subject:CONTENT is:unread"
    gmail_allowed_senders: str = ""
    gmail_max_messages: int = 10
    gmail_timeout_seconds: float = 20.0

    publish_linkedin_interval_seconds: float = 86400.0
    publish_blog_interval_seconds: float = 86400.0
    email_ingest_interval_seconds: float = 900.0

    @property
    def gmail_allowed_sender_list(self) -> list[str]:
        if not self.gmail_allowed_senders.strip():
            return []
        return [value.strip().lower() for value in self.gmail_allowed_senders.split(",") if value.strip()]

    @property
    def cors_allowed_origins(self) -> list[str]:
        origins = [self.frontend_origin.strip()]
        if self.additional_frontend_origins.strip():
            origins.extend(
                [value.strip() for value in self.additional_frontend_origins.split(",") if value.strip()]
            )
        unique: list[str] = []
        for origin in origins:
            if origin and origin not in unique:
                unique.append(origin)
        return unique

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def sqlalchemy_database_uri(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cache_redis_url(self) -> str:
        if self.redis_url:
            return self.redis_url
        return f"redis://{self.redis_host}:{self.redis_port}/0"


settings = Settings()
