"""
Configuration settings for the application
"""

import os
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./seating_engine.db")

    # CORS
    ALLOW_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
        "http://localhost:8000",
    ]

    # Seating defaults applied when an event has no settings row yet
    DEFAULT_SEATS_PER_TABLE: int = int(os.getenv("DEFAULT_SEATS_PER_TABLE", "12"))
    DEFAULT_KIDS_TABLE_MIN_AGE: int = 6
    DEFAULT_KIDS_TABLE_MIN_COUNT: int = 6
    DEFAULT_AVOID_SINGLES_ALONE: bool = True

    # "explicit" -> only keep-apart seating preferences separate groups
    # "all_groups" -> every pair of distinct groups is kept apart
    SEATING_CONFLICT_SOURCE: str = os.getenv("SEATING_CONFLICT_SOURCE", "explicit")

    # Name given to tables the engine creates
    AUTO_TABLE_NAME_PREFIX: str = os.getenv("AUTO_TABLE_NAME_PREFIX", "Table")

    class Config:
        env_file = ".env"

settings = Settings()
