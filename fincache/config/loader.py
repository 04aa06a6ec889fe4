"""
fincache — Configuration Loader

Loads and validates configuration from environment variables and .env files.
Provides a shared configuration instance for the runtime.
"""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..errors import ConfigurationError
from .schemas import FinCacheConfig

logger = logging.getLogger(__name__)

_config_instance: FinCacheConfig | None = None


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def load_config(
    env_file: str | None = None,
    reload: bool = False,
) -> FinCacheConfig:
    """
    Load configuration from environment variables and .env file.

    Args:
        env_file: Path to .env file (default: .env in the working directory)
        reload: Force reload even if config already loaded

    Returns:
        Validated FinCacheConfig instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    global _config_instance

    if _config_instance is not None and not reload:
        return _config_instance

    if env_file:
        env_path = Path(env_file)
    else:
        env_path = Path.cwd() / ".env"

    if env_path.exists():
        logger.info("Loading environment from %s", env_path)
        try:
            load_dotenv(env_path, override=True)
        except Exception as e:
            logger.error(
                "Failed to load .env file from %s: %s",
                env_path,
                e,
                extra={"path": str(env_path), "error": str(e)},
                exc_info=True,
            )
            raise ConfigurationError(
                f"Failed to load environment file: {e}",
                details={"path": str(env_path), "error": str(e)},
            ) from e
    else:
        logger.debug("No .env file found, using environment variables only")

    # Redis store is picked automatically when REDIS_URL is set
    redis_url = os.getenv("REDIS_URL")
    default_store = "redis" if redis_url else "none"

    try:
        config_dict = {
            "environment": os.getenv("ENVIRONMENT", "development"),
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
            "cache": {
                "namespace": os.getenv("CACHE_NAMESPACE", "fincache"),
                "default_ttl_seconds": float(os.getenv("CACHE_DEFAULT_TTL_SECONDS", "300")),
                "stale_ratio": float(os.getenv("CACHE_STALE_RATIO", "0.5")),
                "max_size": int(os.getenv("CACHE_MAX_SIZE", "1000")),
                "store": os.getenv("CACHE_STORE", default_store),
                "store_path": os.getenv("CACHE_STORE_PATH", "./data/cache"),
                "redis_url": redis_url,
                "redis_socket_timeout": float(os.getenv("REDIS_SOCKET_TIMEOUT", "5")),
                "redis_expiry_grace_seconds": int(os.getenv("REDIS_EXPIRY_GRACE_SECONDS", "86400")),
            },
            "observability": {
                "enable_metrics": _env_bool("ENABLE_METRICS", "true"),
                "json_logs": _env_bool("JSON_LOGS", "false"),
            },
        }
    except ValueError as e:
        # int()/float() on a malformed env var
        logger.error("Malformed numeric environment variable: %s", e, extra={"error": str(e)})
        raise ConfigurationError(
            f"Malformed numeric environment variable: {e}",
            details={"error": str(e)},
        ) from e

    try:
        _config_instance = FinCacheConfig(**config_dict)  # type: ignore[arg-type]
        logger.info(
            "Configuration loaded successfully (environment: %s)",
            _config_instance.environment,
            extra={"environment": _config_instance.environment, "cache_store": str(_config_instance.cache.store)},
        )
        return _config_instance
    except ValidationError as e:
        logger.error(
            "Configuration validation failed: %s",
            e,
            extra={"validation_errors": e.errors(), "config_dict_keys": list(config_dict.keys())},
        )
        raise ConfigurationError(
            "Configuration validation failed. Check your environment variables and configuration.",
            details={"validation_errors": e.errors()},
        ) from e


def get_config() -> FinCacheConfig:
    """
    Get the current configuration instance, loading it on first access.

    Returns:
        Current FinCacheConfig instance
    """
    if _config_instance is None:
        return load_config()

    return _config_instance


def reload_config(env_file: str | None = None) -> FinCacheConfig:
    """
    Force reload configuration.

    Args:
        env_file: Optional path to .env file

    Returns:
        Reloaded FinCacheConfig instance
    """
    return load_config(env_file=env_file, reload=True)
