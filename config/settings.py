"""
Company Harvest - Configuration

Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file
load_dotenv()

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = Field(
        default=f"sqlite:///{PROJECT_ROOT}/data/company_harvest.db"
    )

    @property
    def project_root(self) -> Path:
        """Return project root directory."""
        return PROJECT_ROOT

    # Application
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")

    # Saramin sources
    SARAMIN_LISTING_URL: str = Field(
        default="https://www.saramin.co.kr/zf_user/salaries/total-salary/list"
    )
    SARAMIN_DETAIL_URL: str = Field(
        default="https://www.saramin.co.kr/zf_user/company-info/view"
    )
    HTTP_TIMEOUT: float = Field(default=30.0)
    MIN_REQUEST_INTERVAL: float = Field(default=0.5)

    # Harvest job
    HARVEST_JOB_NAME: str = Field(default="saraminJob")
    HARVEST_MAX_PAGE: int = Field(default=100)
    CHUNK_SIZE: int = Field(default=100)
    RETRY_LIMIT: int = Field(default=3)
    SKIP_LIMIT: int = Field(default=100)
    FAULT_TOLERANT: bool = Field(default=True)
    RUN_ID_INCREMENTER: bool = Field(default=True)

    # Merge settings (0-1 scale)
    ADDRESS_MATCH_THRESHOLD: float = Field(default=0.7)

    # Recovery
    RECOVERY_LOOKBACK_HOURS: int = Field(default=24)
    STALE_EXECUTION_HOURS: int = Field(default=12)

    # Scheduler (crontab expressions, minute hour day month day_of_week)
    SCHEDULER_TIMEZONE: str = Field(default="Asia/Seoul")
    FULL_RUN_CRON: str = Field(default="0 4 * * sat")
    RECOVERY_CRON: str = Field(default="0 2 * * *")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
