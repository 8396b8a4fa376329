"""
config.py
---------
Centralised configuration management for the schema converter.

Loads settings from environment variables (with .env file support via
python-dotenv). Provides typed settings as frozen dataclasses so
configuration is immutable at runtime.

Design Decision:
    Using a dataclass with class-level defaults means the converter works
    "out of the box" without any .env file, while still allowing
    environment-based overrides for production runs.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_env_path = Path(__file__).parent / ".env"
if _env_path.exists():
    load_dotenv(dotenv_path=_env_path)


@dataclass(frozen=True)
class SourceConfig:
    """Source reading settings."""
    connect_timeout: int = field(
        default_factory=lambda: int(os.getenv("SOURCE_CONNECT_TIMEOUT", "10"))
    )
    collision_policy: str = field(
        default_factory=lambda: os.getenv("COLLISION_POLICY", "rename").lower()
    )
    # Share of sampled DynamoDB items an attribute type must cover to win.
    dynamodb_type_threshold: float = field(
        default_factory=lambda: float(os.getenv("DYNAMODB_TYPE_THRESHOLD", "0.9"))
    )


@dataclass(frozen=True)
class VerifierConfig:
    """Expression verification settings."""
    endpoint: str | None = field(
        default_factory=lambda: os.getenv("VERIFY_ENDPOINT")  # None → verification skipped
    )
    workers: int = field(
        default_factory=lambda: int(os.getenv("VERIFY_WORKERS", "4"))
    )
    timeout: float = field(
        default_factory=lambda: float(os.getenv("VERIFY_TIMEOUT", "10"))
    )


@dataclass(frozen=True)
class ConversionConfig:
    """Mapping and output settings."""
    synthetic_key_name: str = field(
        default_factory=lambda: os.getenv("SYNTHETIC_KEY_NAME", "synth_id")
    )
    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper()
    )
    log_file: str | None = field(
        default_factory=lambda: os.getenv("LOG_FILE")  # None → log to stderr only
    )
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("OUTPUT_DIR", "."))
    )


@dataclass(frozen=True)
class AppConfig:
    """Root application configuration."""
    source: SourceConfig = field(default_factory=SourceConfig)
    verifier: VerifierConfig = field(default_factory=VerifierConfig)
    conversion: ConversionConfig = field(default_factory=ConversionConfig)
    app_name: str = "Schema Converter"
    app_version: str = "1.0.0"


def load_config() -> AppConfig:
    """
    Build and return the application configuration.

    Returns:
        AppConfig: Fully populated (and frozen) configuration object.

    Example::

        cfg = load_config()
        print(cfg.verifier.workers)            # 4
        print(cfg.source.collision_policy)     # "rename"
    """
    return AppConfig()


# Module-level singleton used throughout the application
CONFIG: AppConfig = load_config()


def get_log_level() -> int:
    """Convert string log level from config to logging module constant."""
    level = getattr(logging, CONFIG.conversion.log_level, None)
    if not isinstance(level, int):
        return logging.INFO
    return level
