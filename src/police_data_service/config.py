"""
config.py
Environment-driven settings for the police data service.

Values are read from the process environment (and a local .env file when
python-dotenv finds one). Anything not set falls back to the defaults below.
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

# Public police API (data.police.uk)
DEFAULT_API_BASE_URL = "https://data.police.uk/api"
DEFAULT_FORCE = "metropolitan"
DEFAULT_USER_AGENT = "Police-Data-Service/1.0"


def _env_int(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(name, default="False"):
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class Settings:
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT
    cache_ttl_seconds: int = 300
    cache_sweep_threshold: int = 100
    default_force: str = DEFAULT_FORCE
    debug: bool = False
    port: int = 5001
    cors_origins: list = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls):
        """Build settings from environment variables."""
        return cls(
            api_base_url=os.getenv("POLICE_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            api_timeout=_env_int("POLICE_API_TIMEOUT", 30),
            user_agent=os.getenv("POLICE_API_USER_AGENT", DEFAULT_USER_AGENT),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", 300),
            cache_sweep_threshold=_env_int("CACHE_SWEEP_THRESHOLD", 100),
            default_force=os.getenv("DEFAULT_FORCE", DEFAULT_FORCE),
            debug=_env_bool("FLASK_DEBUG"),
            port=_env_int("PORT", 5001),
        )
