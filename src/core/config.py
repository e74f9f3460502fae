"""
Application configuration via pydantic-settings.

Loads values from .env file with sensible defaults for local development.
Use ``get_settings()`` to obtain the cached singleton instance.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """SpeakLoop application settings loaded from environment / .env file.

    All settings can be overridden via environment variables or a `.env` file.
    Field names map directly to env var names (case-insensitive).

    External credentials default to empty strings: the service starts without
    them and each client raises ``MissingCredentialsError`` on first use.

    Attributes:
        database_url: Async SQLAlchemy connection string.
        openai_api_key: Credential for the Whisper transcription API.
        claude_api_key: Credential for the Claude pattern-analysis API.
        qstash_current_signing_key: Active key for job-delivery signatures.
        qstash_next_signing_key: Upcoming key accepted during rotation.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Silently ignore unrecognized env vars
    )

    # --- Speech-to-text (OpenAI Whisper API) ---
    openai_api_key: str = ""
    whisper_model: str = "whisper-1"
    transcription_language: str = "en"

    # --- Pattern analysis (Claude) ---
    claude_api_key: str = ""
    claude_model: str = "claude-haiku-4-5-20251001"
    analysis_max_tokens: int = 2048

    # --- Object storage (Cloudflare R2, S3-compatible) ---
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = ""
    r2_endpoint_url: str = ""  # Overrides the account endpoint (e.g. MinIO)

    # --- Job delivery signatures (QStash) ---
    qstash_current_signing_key: str = ""
    qstash_next_signing_key: str = ""
    signature_clock_tolerance_secs: int = 0

    # --- Application ---
    app_url: str = ""  # Public base URL; when set, the signature subject must match it
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    cors_origins: list[str] = ["http://localhost:3000"]
    max_upload_mb: int = 50

    # --- Storage ---
    database_url: str = "sqlite+aiosqlite:///data/speakloop.db"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton.

    Uses ``functools.lru_cache`` so the .env file is read only once.
    Subsequent calls return the same ``Settings`` instance.

    Returns:
        Settings: The application-wide configuration object.
    """
    return Settings()
