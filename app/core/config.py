from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List, Union


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./draftwell.db"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_password: Optional[str] = None
    redis_db: int = 0

    # Firebase
    firebase_project_id: str = "draftwell"
    firebase_credentials_path: str = "firebase-credentials.json"

    # API
    api_v1_str: str = "/api/v1"
    app_base_url: str = "http://localhost:5000"

    # Environment
    environment: str = "development"
    debug: bool = True
    rate_limit_enabled: bool = True

    # Stripe
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_starter_price_id: Optional[str] = None
    stripe_pro_price_id: Optional[str] = None

    # Scoring collaborator
    scoring_api_url: str = "http://localhost:8081/score"
    scoring_api_key: Optional[str] = None
    scoring_timeout_seconds: float = 30.0

    # Entitlements
    default_starting_tokens: int = 2

    # Scheduling
    default_timezone: str = "UTC"
    autosave_debounce_seconds: float = 0.8

    # CORS
    cors_origins: List[str] = ["http://localhost:5000"]

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variable (comma-separated) or use default list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
