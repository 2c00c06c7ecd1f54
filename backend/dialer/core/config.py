"""
Configuration Management
Loads settings from environment variables, .env and optional YAML files
"""
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["*"]

    # Database
    database_url: str = "sqlite:///./dialer.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_echo: bool = False
    db_create_all: bool = False

    # Public URL the provider calls back into (status / voice / assignment)
    public_base_url: Optional[str] = None

    # Bearer tokens are issued by the external auth service
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"

    # Parallel dial defaults (campaign values take precedence)
    default_parallel_concurrency: int = 10
    default_dial_ratio: float = 1.0

    # Provider endpoints
    provider_api_base: str = "https://api.twilio.com/2010-04-01"
    routing_api_base: str = "https://taskrouter.twilio.com/v1"
    provider_timeout_seconds: float = 30.0
    caller_id_override: Optional[str] = None

    # Stale in-progress reaper
    stale_in_progress_seconds: int = 7200
    reaper_interval_seconds: int = 300

    def require_public_base_url(self, https_only: bool = False) -> str:
        """
        Return the callback base URL without a trailing slash.

        Raises:
            ConfigurationError: If the URL is missing (or not https when required)
        """
        from dialer.core.exceptions import ConfigurationError

        base = (self.public_base_url or "").strip()
        if not base:
            raise ConfigurationError("public_base_url_missing")
        if https_only and not base.startswith("https://"):
            raise ConfigurationError("public_base_url_invalid")
        return base.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance (override via dependency_overrides in tests)."""
    return Settings()


class ConfigManager:
    """Manages loading and merging configuration from multiple sources"""

    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration files in order of precedence"""
        default_path = self.config_dir / "default.yaml"
        if default_path.exists():
            self._config = self._load_yaml(default_path)

        env_path = self.config_dir / f"{self.env}.yaml"
        if env_path.exists():
            env_config = self._load_yaml(env_path)
            self._deep_merge(self._config, env_config)

        self._substitute_env_vars(self._config)

    def _load_yaml(self, path: Path) -> Dict:
        """Load YAML file"""
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}

    def _substitute_env_vars(self, config: Dict) -> None:
        """Replace ${VAR_NAME} with environment variable values"""
        for key, value in config.items():
            if isinstance(value, dict):
                self._substitute_env_vars(value)
            elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                env_var = value[2:-1]
                config[key] = os.getenv(env_var, value)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Recursively merge override into base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation
        Example: config.get("dialer.status_outcomes.busy") -> "busy"
        """
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value
