"""
Utility functions for the marketplace assistant.

This module provides:
- Environment variable loading with typed defaults
- Logging configuration with structured JSON output
- Timing utilities for pipeline stages
- Input sanitization for safe logging of customer text
"""

import os
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from loguru import logger


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


# Optional environment variables with defaults
DEFAULT_SETTINGS: Dict[str, Any] = {
    "OPENROUTER_API_KEY": "",
    "LLM_BASE_URL": "https://openrouter.ai/api/v1",
    "GENERATION_MODEL": "anthropic/claude-3-haiku",
    "CLASSIFICATION_MODEL": "anthropic/claude-3-haiku",
    "REQUEST_TIMEOUT_SECONDS": 8.0,
    "INTENT_CONFIDENCE_THRESHOLD": 0.7,
    "ESCALATION_CONFIDENCE_THRESHOLD": 0.3,
    "ENRICHMENT_CONFIDENCE_THRESHOLD": 0.7,
    "AUTO_ESCALATION_ENABLED": True,
    "PERSONA_PHRASE_PROBABILITY": 0.3,
    "CATALOG_LIST_LIMIT": 12,
    "LIST_TITLE_MAX_LENGTH": 24,
    "NOTIFICATION_WEBHOOK_URL": "",
    "BUSINESS_CONFIG_TTL_SECONDS": 300.0,
    "LOG_LEVEL": "INFO",
    "LOG_JSON": True,
}

_INT_SETTINGS = {"CATALOG_LIST_LIMIT", "LIST_TITLE_MAX_LENGTH"}
_FLOAT_SETTINGS = {
    "REQUEST_TIMEOUT_SECONDS",
    "INTENT_CONFIDENCE_THRESHOLD",
    "ESCALATION_CONFIDENCE_THRESHOLD",
    "ENRICHMENT_CONFIDENCE_THRESHOLD",
    "PERSONA_PHRASE_PROBABILITY",
    "BUSINESS_CONFIG_TTL_SECONDS",
}
_BOOL_SETTINGS = {"AUTO_ESCALATION_ENABLED", "LOG_JSON"}
_UNIT_INTERVAL_SETTINGS = {
    "INTENT_CONFIDENCE_THRESHOLD",
    "ESCALATION_CONFIDENCE_THRESHOLD",
    "ENRICHMENT_CONFIDENCE_THRESHOLD",
    "PERSONA_PHRASE_PROBABILITY",
}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value}")


def setup_logging(level: Optional[str] = None, serialize: Optional[bool] = None) -> None:
    """
    Configure structured logging with Loguru.

    Args:
        level: Minimum log level (defaults to LOG_LEVEL from configuration)
        serialize: Emit JSON records (defaults to LOG_JSON from configuration)
    """
    config = get_config()
    if level is None:
        level = config["LOG_LEVEL"]
    if serialize is None:
        serialize = config["LOG_JSON"]

    # Remove default handler
    logger.remove()
    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level=level,
        serialize=serialize,
    )

    logger.info("Logging configuration complete", level=level, serialize=serialize)


def load_and_validate_env(overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load environment variables and coerce them to their expected types.

    Every setting is optional. Values that fail to parse are replaced by their
    default with a warning.

    Args:
        overrides: Values that take precedence over the environment

    Returns:
        Dict[str, Any]: Configuration dictionary with validated values

    Raises:
        ConfigurationError: If a threshold or probability lies outside [0, 1]
    """
    load_dotenv()
    overrides = overrides or {}

    config: Dict[str, Any] = {}
    for var, default in DEFAULT_SETTINGS.items():
        value = overrides.get(var, os.getenv(var, default))
        try:
            if var in _INT_SETTINGS:
                config[var] = int(value)
            elif var in _FLOAT_SETTINGS:
                config[var] = float(value)
            elif var in _BOOL_SETTINGS:
                config[var] = _parse_bool(value)
            else:
                config[var] = str(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid value for {var}, using default", value=str(value), default=default)
            config[var] = default

    for var in _UNIT_INTERVAL_SETTINGS:
        if not 0.0 <= config[var] <= 1.0:
            raise ConfigurationError(f"{var} must be between 0 and 1, got {config[var]}")

    logger.debug("Environment configuration loaded", llm_enabled=bool(config["OPENROUTER_API_KEY"]))
    return config


def sanitize_for_logging(text: Optional[str], max_length: int = 200) -> str:
    """
    Sanitize customer input for safe logging.

    Args:
        text: Input text to sanitize
        max_length: Maximum length of sanitized text

    Returns:
        str: Sanitized text safe for logging
    """
    if not text:
        return ""

    sensitive_patterns = [
        r'sk-[a-zA-Z0-9]+',  # API keys starting with sk-
        r'Bearer\s+[a-zA-Z0-9]+',  # Bearer tokens
        r'\+?\d[\d\s-]{8,}\d',  # Phone and card numbers
        r'\b[A-Za-z0-9]{20,}\b'  # Long alphanumeric strings (potential tokens)
    ]

    sanitized = str(text)
    for pattern in sensitive_patterns:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


class Timer:
    """Context manager for timing pipeline stages."""

    def __init__(self, operation_name: str = "operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = get_utc_datetime()
        logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = get_utc_datetime()
        duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

        if exc_type is None:
            logger.debug(f"Completed {self.operation_name}", duration_ms=duration_ms)
        else:
            logger.error(f"Failed {self.operation_name}", duration_ms=duration_ms, error=str(exc_val))

    @property
    def duration_ms(self) -> float:
        """Get duration in milliseconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds() * 1000
        return 0.0


def get_utc_datetime() -> datetime:
    """
    Get current datetime object in UTC timezone.

    Returns:
        datetime: Current UTC datetime object with timezone info
    """
    return datetime.now(timezone.utc)


# Global configuration instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """
    Get the process-wide configuration, loading it if not already loaded.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    global _config
    if _config is None:
        _config = load_and_validate_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next access reloads it."""
    global _config
    _config = None
