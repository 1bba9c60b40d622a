"""
Application configuration via environment variables.
"""
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Harness settings loaded from environment / .env file."""

    # App
    app_name: str = "Style API Tester"
    log_level: str = "INFO"

    # CORS
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8080",
    ]

    # Remote Style API
    style_api_base_url: str = "https://haider.techrealm.online"
    request_timeout_seconds: float = 30.0

    # Session durability
    session_store_path: str = "./data/style_session.json"
    advance_busy_policy: str = "queue"  # "queue" or "reject"

    # Status page
    status_poll_interval_seconds: int = 60

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


settings = Settings()
