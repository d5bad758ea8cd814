"""
Configuration management using Pydantic settings.
"""
from typing import List, Optional, Union
import os
from pydantic import AnyHttpUrl, validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "Learning Progress Engine"
    DEBUG: bool = True
    ENV: str = os.getenv("ENV", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./learning_progress.db")

    # JWT Configuration (tokens are issued by the auth service)
    SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

    # Progress ledger
    LEDGER_MAX_RETRIES: int = int(os.getenv("LEDGER_MAX_RETRIES", 3))
    LEDGER_RETRY_BACKOFF_SECONDS: float = float(os.getenv("LEDGER_RETRY_BACKOFF_SECONDS", 0.2))
    ASSIGNMENT_MAX_ATTEMPTS: int = int(os.getenv("ASSIGNMENT_MAX_ATTEMPTS", 3))
    ASSIGNMENT_PASSING_SCORE: float = float(os.getenv("ASSIGNMENT_PASSING_SCORE", 60))
    SCORE_POLICY: str = os.getenv("SCORE_POLICY", "latest")  # latest, best

    # Analytics
    ANALYTICS_DEFAULT_WEEKS: Optional[int] = None  # None covers all history

    # Weak-area detection
    WEAK_AREA_WINDOW_DAYS: int = int(os.getenv("WEAK_AREA_WINDOW_DAYS", 30))
    WEAK_AREA_LOW_SCORE_THRESHOLD: float = float(os.getenv("WEAK_AREA_LOW_SCORE_THRESHOLD", 60))
    WEAK_AREA_MIN_GRADED_ITEMS: int = int(os.getenv("WEAK_AREA_MIN_GRADED_ITEMS", 3))
    WEAK_AREA_MIN_FAILED_ATTEMPTS: int = int(os.getenv("WEAK_AREA_MIN_FAILED_ATTEMPTS", 2))
    WEAK_AREA_TIME_RATIO_THRESHOLD: float = float(os.getenv("WEAK_AREA_TIME_RATIO_THRESHOLD", 2.0))
    WEAK_AREA_MIN_TIMED_ITEMS: int = int(os.getenv("WEAK_AREA_MIN_TIMED_ITEMS", 3))
    WEAK_AREA_COOLDOWN_DAYS: int = int(os.getenv("WEAK_AREA_COOLDOWN_DAYS", 14))
    DETECTION_DEBOUNCE_SECONDS: float = float(os.getenv("DETECTION_DEBOUNCE_SECONDS", 30))

    # Recommendations
    RECOMMENDATION_RECENT_DAYS: int = int(os.getenv("RECOMMENDATION_RECENT_DAYS", 7))
    RECOMMENDATION_MIN_ACTIVE_DAYS: int = int(os.getenv("RECOMMENDATION_MIN_ACTIVE_DAYS", 2))

    # Reports
    REPORT_DIR: str = os.getenv("REPORT_DIR", "./reports")
    REPORT_MAX_WORKERS: int = int(os.getenv("REPORT_MAX_WORKERS", 4))

    # Session time tracker
    HEARTBEAT_INTERVAL_SECONDS: float = float(os.getenv("HEARTBEAT_INTERVAL_SECONDS", 1.0))
    HEARTBEAT_FLUSH_EVERY: int = int(os.getenv("HEARTBEAT_FLUSH_EVERY", 10))
    HEARTBEAT_MAX_RETRIES: int = int(os.getenv("HEARTBEAT_MAX_RETRIES", 3))
    HEARTBEAT_BACKOFF_SECONDS: float = float(os.getenv("HEARTBEAT_BACKOFF_SECONDS", 0.5))
    COMPLETION_MAX_RETRIES: int = int(os.getenv("COMPLETION_MAX_RETRIES", 8))

    # CORS Configuration
    BACKEND_CORS_ORIGINS: Union[List[AnyHttpUrl], str] = "*"

    @validator("BACKEND_CORS_ORIGINS", pre=True)
    def assemble_cors_origins(cls, v):
        if v == "*" or v == ["*"]:
            return "*"
        if isinstance(v, str):
            return [i.strip() for i in v.split(",")]
        return v

    @validator("SCORE_POLICY")
    def check_score_policy(cls, v):
        if v not in ("latest", "best"):
            raise ValueError("SCORE_POLICY must be 'latest' or 'best'")
        return v

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


settings = Settings()
