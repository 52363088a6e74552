"""Configuration management using Pydantic BaseSettings with JSON file support."""
import json
import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


def flatten_json_config(config: dict[str, Any]) -> dict[str, Any]:
    """Flatten nested JSON config into flat key-value pairs.

    Sections only group keys for readability:
    {
        "redis": {"redis_host": "localhost", "redis_port": 6379},
        "foursquare": {"foursquare_client_id": "..."}
    }

    Becomes:
    {"redis_host": "localhost", "redis_port": 6379, "foursquare_client_id": "..."}

    Keys starting with "_" (like "_comment") are skipped.
    """
    result = {}
    for key, value in config.items():
        if key.startswith("_"):
            continue
        if isinstance(value, dict):
            result.update(flatten_json_config(value))
        else:
            result[key] = value
    return result


def load_json_config(config_file: Optional[str] = None) -> dict[str, Any]:
    """Load configuration from a JSON file.

    Args:
        config_file: Path to JSON config file. If None, checks CONFIG_FILE env var.

    Returns:
        Dictionary of configuration values (flattened), or empty dict if no file found.
    """
    file_path = config_file or os.getenv("CONFIG_FILE")
    if not file_path:
        return {}

    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in config file {file_path}: {e}")
        return {}
    except OSError as e:
        logger.error(f"Error reading config file {file_path}: {e}")
        return {}

    logger.info(f"Loaded configuration from: {file_path}")
    return flatten_json_config(config)


class Settings(BaseSettings):
    """Application configuration with JSON file and environment variable support.

    Configuration priority (highest to lowest):
    1. Explicit keyword arguments
    2. Environment variables
    3. JSON config file (specified via CONFIG_FILE env var)
    4. Default values
    """

    # Redis Configuration
    redis_host: str = "redis"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    # Foursquare (venue directory) Configuration
    foursquare_client_id: str = ""
    foursquare_client_secret: str = ""
    foursquare_api_version: str = "20231010"
    foursquare_endpoint_base_v2: str = "https://api.foursquare.com/v2"
    provider_timeout_seconds: float = 10.0

    # Proximity cache Configuration
    search_log_max_age_hours: float = 24.0
    nearby_result_limit: int = 50
    rooms_result_limit: int = 100
    provider_result_limit: int = 50

    # Background jobs
    cache_stats_refresh_minutes: int = 5

    # Server Configuration
    server_port: int = 8080
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def __init__(self, **kwargs):
        """Initialize settings from JSON file and environment variables."""
        json_config = load_json_config()

        # Environment variables win over the JSON file
        json_config = {
            key: value
            for key, value in json_config.items()
            if key.upper() not in os.environ and key.lower() not in os.environ
        }

        super().__init__(**{**json_config, **kwargs})

    @property
    def search_log_max_age(self) -> timedelta:
        """Maximum age of a search log entry that still counts as a cache hit."""
        return timedelta(hours=self.search_log_max_age_hours)

    @property
    def redis_address(self) -> str:
        """Get Redis connection address in host:port format."""
        return f"{self.redis_host}:{self.redis_port}"
