# app/config.py
from pydantic_settings import BaseSettings
from pydantic import Field

class Settings(BaseSettings):
    # JWT Security
    jwt_secret: str = Field(
        default="dev-secret",
        description="JWT signing secret used for token validation"
    )

    # Token expiry control (in hours)
    jwt_exp_hours: int = Field(
        default=6,
        description="JWT token expiry in hours"
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level for application (INFO, DEBUG, ERROR)"
    )

    # Snapshot lifetime (in milliseconds)
    snapshot_expires_in_ms: int = Field(
        default=24 * 60 * 60 * 1000,
        gt=0,
        le=100 * 365 * 24 * 60 * 60 * 1000,
        description="Default validity window of generated snapshots"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False

# Instantiate settings once
settings: Settings = Settings()
