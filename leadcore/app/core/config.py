"""
MarketPro Lead Core API Configuration
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "MarketPro Lead Core API"
    version: str = "0.3.0"
    debug: bool = False
    environment: str = "production"

    # API Configuration
    api_v1_prefix: str = "/api/v1"

    # Database
    database_url: str = "sqlite+aiosqlite:///./leadcore.db"

    # NATS Configuration
    nats_url: str = "nats://localhost:4222"

    # Monitoring
    prometheus_enabled: bool = True
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Automation scheduler
    automation_enabled: bool = True
    automation_interval_seconds: int = 300

    # Lead listing
    default_page_size: int = 50
    max_page_size: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
