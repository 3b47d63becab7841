from typing import List

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    env: str = "development"
    database_url: str = "sqlite:///./fantasy.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    season: int | None = None

    # Season partitioning
    min_season: int = 2000
    season_horizon: int = 5

    # Ledger / settlement
    venue_points: float = 930.0
    max_roster_drivers: int = 6
    required_categories: List[str] = ["M", "JS", "I"]
    budget_tolerance: float = 0.01

    class Config:
        env_file = ".env"
        env_prefix = ""
        case_sensitive = False

settings = Settings()
