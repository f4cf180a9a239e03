from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application
    log_level: str = "INFO"

    # Backend API
    api_base_url: str = "http://localhost:8000/api"
    request_timeout: float = 30.0

    # Autosave
    autosave_delay: float = 2.0
    saved_indicator_seconds: float = 2.0
    error_indicator_seconds: float = 3.0

    # Deadline timer
    tick_interval: float = 1.0
    low_time_warning_seconds: int = 300
    expiry_retry_seconds: float = 5.0

    # Local progress cache (JSON file store)
    storage_path: str = ".quiz_cache.json"

    # Development server
    devserver_host: str = "127.0.0.1"
    devserver_port: int = 8000


# Global settings instance
settings = Settings()
