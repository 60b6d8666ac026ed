"""
Configuration settings for the Medication Safety Core
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Medication Safety Core"
    DEBUG: bool = False
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = f"sqlite:///{BASE_DIR}/data/medication_safety.db"
    SQL_DEBUG: bool = False

    # Interaction rules
    INTERACTION_RULES_PATH: Optional[Path] = None  # JSON file replacing the built-in tables
    DDI_DEFAULT_SEVERITY: str = "MODERATE"  # severity of a table hit with no severe-pair match
    HONOR_ALERT_OVERRIDES: bool = True

    # Administration history
    ADMINISTRATION_HISTORY_DAYS: int = 30

    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()
