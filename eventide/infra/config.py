"""Application configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./eventide.db"

    # Action cards
    enable_action_card_chains: bool = True
    action_card_execution_delay: float = 0.0  # seconds between repetitions
    action_card_execution_limit: int = 0  # 0 = no cap on repetitions
    roll_capture_timeout: float = 3.0  # seconds

    # Rules
    default_threshold_value: int = 15
    default_armor_class: int = 11

    # Auth / JWT
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440  # 24 hours

    # App
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
