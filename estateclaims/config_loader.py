"""
Load application configuration from a YAML file and environment variables.
Secrets (e.g. MONGODB_URI) are read from the environment only; never from the config file.

A .env file in the project root is loaded automatically so you can set MONGODB_URI there.
Copy .env.example to .env and fill in your connection string.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from estateclaims.models.catalog import ALLOWED_MIME_TYPES, MAX_UPLOAD_BYTES

# Load .env from current working directory (project root when run as python -m ...)
load_dotenv()

# Environment key for MongoDB connection string (required when connecting to DB)
MONGODB_URI_ENV = "MONGODB_URI"

CONFIG_SECTIONS = ("mongodb", "documents", "storage", "external", "logging")


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass(frozen=True)
class WorkflowSettings:
    """Effective limits and collaborator settings resolved from config."""

    max_upload_bytes: int = MAX_UPLOAD_BYTES
    allowed_mime_types: frozenset[str] = ALLOWED_MIME_TYPES
    ocr_timeout_seconds: float = 30.0
    discovery_timeout_seconds: float = 60.0
    max_attempts: int = 3
    backoff_seconds: float = 0.5


def load_config(config_path: str | Path, require_uri: bool = False) -> dict[str, Any]:
    """
    Load configuration from a YAML file and optionally inject MONGODB_URI from env.

    Args:
        config_path: Path to the YAML config file.
        require_uri: If True, require MONGODB_URI to be set in the environment
            and add it to config["mongodb"]["uri"]. Raises ConfigError if unset.

    Returns:
        Config dict with keys: mongodb, documents, storage, external, logging.
        If require_uri is True, config["mongodb"]["uri"] is set from env.

    Raises:
        ConfigError: If the file cannot be read, YAML is invalid, or require_uri
            is True and MONGODB_URI is not set.
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a YAML object (key-value), got {type(data)}")

    # Ensure expected top-level keys exist so callers can assume structure
    config = {section: data.get(section) or {} for section in CONFIG_SECTIONS}

    if require_uri:
        config["mongodb"] = {**config["mongodb"], "uri": get_mongodb_uri()}

    return config


def get_mongodb_uri() -> str:
    """
    Return MongoDB URI from the environment.
    Raises ConfigError if MONGODB_URI is not set.
    """
    uri = os.environ.get(MONGODB_URI_ENV)
    if not uri or not uri.strip():
        raise ConfigError(
            f"{MONGODB_URI_ENV} must be set in the environment when connecting to MongoDB"
        )
    return uri.strip()


def workflow_settings(config: dict[str, Any] | None) -> WorkflowSettings:
    """
    Resolve WorkflowSettings from config["documents"] and config["external"].
    Missing keys fall back to the defaults; non-positive limits raise ConfigError.
    """
    config = config or {}
    docs = config.get("documents") or {}
    ext = config.get("external") or {}
    defaults = WorkflowSettings()

    mime_types = docs.get("allowed_mime_types")
    try:
        settings = WorkflowSettings(
            max_upload_bytes=int(docs.get("max_upload_bytes", defaults.max_upload_bytes)),
            allowed_mime_types=frozenset(mime_types) if mime_types else defaults.allowed_mime_types,
            ocr_timeout_seconds=float(ext.get("ocr_timeout_seconds", defaults.ocr_timeout_seconds)),
            discovery_timeout_seconds=float(
                ext.get("discovery_timeout_seconds", defaults.discovery_timeout_seconds)
            ),
            max_attempts=int(ext.get("max_attempts", defaults.max_attempts)),
            backoff_seconds=float(ext.get("backoff_seconds", defaults.backoff_seconds)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid workflow setting: {e}") from e

    if settings.max_upload_bytes <= 0:
        raise ConfigError("documents.max_upload_bytes must be positive")
    if settings.max_attempts < 1:
        raise ConfigError("external.max_attempts must be at least 1")
    if settings.ocr_timeout_seconds <= 0 or settings.discovery_timeout_seconds <= 0:
        raise ConfigError("external timeouts must be positive")
    return settings
