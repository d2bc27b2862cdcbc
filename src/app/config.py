"""Configuration management using Pydantic settings."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from oncall.simulation import SessionConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ONCALL-SIM"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Game clock
    game_speed: float = Field(default=1.0, gt=0, allow_inf_nan=False)
    tick_period_ms: int = Field(default=1000, gt=0)        # divided by game_speed
    incident_interval_ms: int = Field(default=5000, gt=0)  # fixed, ignores game_speed

    # Calendar and fleet
    total_days: int = Field(default=7, ge=1)
    day_length: int = Field(default=300, ge=1)   # ticks per simulated day
    max_workers: int = Field(default=4, ge=1)

    # Determinism: set a seed to replay the same incident sequence
    rng_seed: Optional[int] = None

    # Start ticking as soon as the server is up, without a START_GAME call
    autostart: bool = False

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            game_speed=self.game_speed,
            tick_period_ms=self.tick_period_ms,
            incident_interval_ms=self.incident_interval_ms,
            total_days=self.total_days,
            day_length=self.day_length,
            max_workers=self.max_workers,
            rng_seed=self.rng_seed,
            autostart=self.autostart,
        )


settings = Settings()
