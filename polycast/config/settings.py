"""
Runtime settings read from the environment (.env supported)
"""
import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

from polycast.config.engine_config import DEFAULT_ENGINE_CONFIG, EngineConfig

load_dotenv()


@dataclass(frozen=True)
class Settings:
    redis_url: str
    redis_key_prefix: str
    redis_socket_timeout: float
    calibration_day_of_week: str
    calibration_hour: int
    settlement_batch_size: int
    model_version: Optional[str]


def load_settings() -> Settings:
    """Build Settings from environment variables"""
    return Settings(
        redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        redis_key_prefix=os.getenv("REDIS_KEY_PREFIX", ""),
        redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
        calibration_day_of_week=os.getenv("CALIBRATION_DAY_OF_WEEK", "sun"),
        calibration_hour=int(os.getenv("CALIBRATION_HOUR", "3")),
        settlement_batch_size=int(os.getenv("SETTLEMENT_BATCH_SIZE", "5")),
        model_version=os.getenv("MODEL_VERSION") or None,
    )


def engine_config_from_settings(settings: Settings) -> EngineConfig:
    """DEFAULT_ENGINE_CONFIG with deployment overrides applied"""
    if settings.model_version:
        return replace(DEFAULT_ENGINE_CONFIG, model_version=settings.model_version)
    return DEFAULT_ENGINE_CONFIG
