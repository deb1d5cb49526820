"""Application configuration"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./reposync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # GitHub App
    github_app_id: str | None = None
    # PEM contents; literal "\n" sequences are accepted (common in .env files).
    github_app_private_key: str | None = None
    # App-level webhook secret, used when a connection has no secret of its own.
    github_webhook_secret: str | None = None
    github_api_url: str = "https://api.github.com"
    github_timeout_seconds: float = 15.0
    github_max_attempts: int = 3
    github_backoff_base_seconds: float = 0.5
    github_backoff_max_seconds: float = 30.0

    # Sync
    default_sync_interval_minutes: int = 10
    sync_max_workers: int = 4
    # A "syncing" flag older than this is treated as abandoned by a crashed worker.
    sync_lease_minutes: int = 30
    # preserve_local | last_writer_wins
    conflict_policy: str = "preserve_local"
    # external | internal (which side wins when timestamps are equal)
    conflict_tie_break: str = "external"

    # Jobs
    job_error_cap: int = 100

    # Webhooks
    webhook_payload_max_chars: int = 10_000
    webhook_dedup_bucket_seconds: int = 300

    # AI auto-tagging
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    # Comma-separated, tried in order until one answers.
    auto_tagging_models: str = (
        "arcee-ai/trinity-large-preview:free,upstage/solar-pro-3:free,z-ai/glm-4.7-flash"
    )
    auto_tagging_timeout_seconds: float = 30.0

    # Logging
    log_level: str = "INFO"

    # Auth (optional)
    # When enabled, all routes (API, docs) are protected by HTTP Basic auth,
    # except for /health and the GitHub webhook (which is signature-verified).
    auth_enabled: bool = False
    auth_username: str | None = None
    auth_password: str | None = None

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
