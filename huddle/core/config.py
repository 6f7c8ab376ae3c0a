"""
Core configuration module using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # Database Configuration
    database_url: str = "sqlite:///./huddle.db"
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_pre_ping: bool = True
    db_pool_recycle: int = 3600  # 1 hour
    
    # Application Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = True
    cors_origins: List[str] = ["*"]
    
    # Realtime Configuration
    websocket_path: str = "/ws"
    recent_message_limit: int = 50
    storage_timeout_seconds: float = 5.0
    max_message_length: int = 2000
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
