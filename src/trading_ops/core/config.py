from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    PROJECT_NAME: str = "trading-ops-console"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"

    # Environment
    ENV: str = "dev"  # dev, staging, production
    DEBUG: bool = False

    # Canary engine
    CANARY_CHECK_INTERVAL_SECONDS: float = 5.0
    CANARY_BASE_REQUESTS: int = 1000
    CANARY_METRICS_SEED: Optional[int] = None
    CANARY_START_RATE_LIMIT: str = "60/minute"

    # Connectivity monitoring
    HEALTH_HISTORY_LIMIT: int = 100
    HEALTH_WINDOW_SIZE: int = 20

    # Seconds to let in-flight requests drain on shutdown
    SHUTDOWN_GRACE_SECONDS: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True
    )

settings = Settings()
