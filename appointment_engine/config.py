"""
Centralized configuration with environment variable overrides.

Job sizing, booking policy windows, cache bounds and retention periods
are configurable here. Business rules that are policy rather than tuning
(the no-show waiting windows) live as constants next to the code that
enforces them.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from appointment_engine.logging_context import LOG_FORMAT, operation_handler

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


@dataclass(frozen=True)
class GenerationConfig:
    """Slot generation job settings."""

    days_to_generate: int = _safe_int("SLOT_DAYS_TO_GENERATE", "30")
    batch_size: int = _safe_int("SLOT_BATCH_SIZE", "10")
    default_slot_duration: int = _safe_int("DEFAULT_SLOT_DURATION", "30")
    default_buffer_minutes: int = _safe_int("DEFAULT_BUFFER_MINUTES", "0")
    max_exception_occurrences: int = _safe_int("EXCEPTION_MAX_OCCURRENCES", "100")


@dataclass(frozen=True)
class BookingPolicyConfig:
    """Booking lifecycle settings enforced around the state machine."""

    confirmation_window_minutes: int = _safe_int("CONFIRMATION_WINDOW_MINUTES", "15")
    confirmation_batch_size: int = _safe_int("CONFIRMATION_BATCH_SIZE", "50")
    max_reason_length: int = _safe_int("MAX_REASON_LENGTH", "500")


@dataclass(frozen=True)
class CleanupConfig:
    """Retention for past, never-booked slots."""

    available_slot_retention_days: int = _safe_int("AVAILABLE_SLOT_RETENTION_DAYS", "7")
    # Blocked slots record exceptions and are kept longer
    blocked_slot_retention_days: int = _safe_int("BLOCKED_SLOT_RETENTION_DAYS", "14")


@dataclass(frozen=True)
class CacheConfig:
    """Bounds for the in-process template cache."""

    template_ttl_seconds: int = _safe_int("TEMPLATE_CACHE_TTL_SECONDS", "300")
    template_max_entries: int = _safe_int("TEMPLATE_CACHE_MAX_ENTRIES", "1000")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    generation: GenerationConfig = field(default_factory=GenerationConfig)
    booking: BookingPolicyConfig = field(default_factory=BookingPolicyConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "appointment-engine")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    gen = config.generation
    if not 1 <= gen.days_to_generate <= 365:
        raise ValueError(
            f"SLOT_DAYS_TO_GENERATE must be between 1 and 365, got {gen.days_to_generate}"
        )
    if gen.batch_size < 1:
        raise ValueError(f"SLOT_BATCH_SIZE must be >= 1, got {gen.batch_size}")
    if not 15 <= gen.default_slot_duration <= 480:
        raise ValueError(
            f"DEFAULT_SLOT_DURATION must be between 15 and 480, got {gen.default_slot_duration}"
        )
    if not 0 <= gen.default_buffer_minutes <= 120:
        raise ValueError(
            f"DEFAULT_BUFFER_MINUTES must be between 0 and 120, got {gen.default_buffer_minutes}"
        )
    if gen.max_exception_occurrences < 1:
        raise ValueError(
            "EXCEPTION_MAX_OCCURRENCES must be >= 1, "
            f"got {gen.max_exception_occurrences}"
        )

    policy = config.booking
    if policy.confirmation_window_minutes < 1:
        raise ValueError(
            "CONFIRMATION_WINDOW_MINUTES must be >= 1, "
            f"got {policy.confirmation_window_minutes}"
        )
    if policy.confirmation_batch_size < 1:
        raise ValueError(
            f"CONFIRMATION_BATCH_SIZE must be >= 1, got {policy.confirmation_batch_size}"
        )
    if policy.max_reason_length < 1:
        raise ValueError(
            f"MAX_REASON_LENGTH must be >= 1, got {policy.max_reason_length}"
        )

    if config.cleanup.available_slot_retention_days < 0:
        raise ValueError(
            "AVAILABLE_SLOT_RETENTION_DAYS must be >= 0, "
            f"got {config.cleanup.available_slot_retention_days}"
        )
    if config.cleanup.blocked_slot_retention_days < 0:
        raise ValueError(
            "BLOCKED_SLOT_RETENTION_DAYS must be >= 0, "
            f"got {config.cleanup.blocked_slot_retention_days}"
        )

    for name, value in [
        ("TEMPLATE_CACHE_TTL_SECONDS", config.cache.template_ttl_seconds),
        ("TEMPLATE_CACHE_MAX_ENTRIES", config.cache.template_max_entries),
    ]:
        if value < 1:
            raise ValueError(f"{name} must be >= 1, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[operation_handler()],
    )
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
