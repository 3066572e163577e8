import logging
import re
from datetime import timedelta
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv
from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings

from auto_downscale.core.durations import parse_duration, parse_rules
from auto_downscale.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

root_dir = Path(__file__).parent.parent
env_path = root_dir / ".env"
load_dotenv(env_path)


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "auto-downscale"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # Règles d'inactivité
    DEFAULT_MIN_AGE: str = "1h"
    MIN_AGE_RULES: Dict[str, str] = {}

    # Page d'attente
    PLACEHOLDER_SERVICE_NAME: str = "auto-downscale"
    PLACEHOLDER_SERVICE_NAMESPACE: str = "auto-downscale"
    PLACEHOLDER_DOMAIN: str = ""

    # Proxy partagé par namespace
    PROXY_NAME: str = "auto-downscale-proxy"
    PROXY_IMAGE: str = "auto-downscale/proxy:latest"
    PROXY_PORT: int = 8080
    PROXY_READY_TIMEOUT_SECONDS: float = 120

    # Attente de disponibilité
    READINESS_POLL_INTERVAL_SECONDS: float = 10
    READINESS_TIMEOUT_SECONDS: float = 900

    # Balayage
    SWEEP_INTERVAL_SECONDS: float = 0
    SWEEP_CONCURRENCY: int = 4

    UPSCALE_DENY_LIST: List[str] = []

    @field_validator("DEFAULT_MIN_AGE")
    @classmethod
    def _check_default_min_age(cls, value: str) -> str:
        parse_duration(value)
        return value

    @field_validator("MIN_AGE_RULES")
    @classmethod
    def _check_min_age_rules(cls, value: Dict[str, str]) -> Dict[str, str]:
        parse_rules(value)
        return value

    @field_validator("UPSCALE_DENY_LIST")
    @classmethod
    def _check_deny_list(cls, value: List[str]) -> List[str]:
        for pattern in value:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigurationError(f"Regex invalide dans UPSCALE_DENY_LIST '{pattern}': {e}") from e
        return value

    @field_validator("SWEEP_CONCURRENCY")
    @classmethod
    def _check_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ConfigurationError("SWEEP_CONCURRENCY doit être >= 1")
        return value

    @property
    def default_min_age(self) -> timedelta:
        return parse_duration(self.DEFAULT_MIN_AGE)

    @property
    def min_age_rules(self) -> Dict[re.Pattern, timedelta]:
        return parse_rules(self.MIN_AGE_RULES)

    @property
    def placeholder_upstream(self) -> str:
        return f"{self.PLACEHOLDER_SERVICE_NAME}.{self.PLACEHOLDER_SERVICE_NAMESPACE}.svc.cluster.local"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = "ignore"
        case_sensitive = True


def load_settings() -> Settings:
    """Charge la configuration; toute valeur invalide est fatale"""
    try:
        return Settings()
    except ConfigurationError as e:
        logger.error(f"Configuration invalide: {e}")
        raise
    except ValidationError as e:
        logger.error(f"Configuration invalide: {e}")
        raise ConfigurationError(str(e)) from e


settings = load_settings()
