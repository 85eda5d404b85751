#!/usr/bin/env python3
"""
Validate the workflow configuration: the YAML file loads, limits resolve, and, for the mongodb
backend, MONGODB_URI is set and the server answers a ping.
Run from project root:  python -m scripts.validate_env [config_path]
"""

from __future__ import annotations

import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv

load_dotenv(_PROJECT_ROOT / ".env")

from pymongo.errors import PyMongoError

from estateclaims.config_loader import ConfigError, get_mongodb_uri, load_config, workflow_settings
from estateclaims.db import get_client


def is_valid_mongodb_uri(uri: str) -> bool:
    """Return True if URI looks like a MongoDB connection string."""
    return uri.startswith(("mongodb://", "mongodb+srv://")) and " " not in uri.strip()


def main() -> int:
    config_path = Path(sys.argv[1]) if len(sys.argv) > 1 else _PROJECT_ROOT / "config" / "config.yaml"
    if not config_path.exists():
        config_path = _PROJECT_ROOT / "config" / "config.example.yaml"

    print(f"Validating {config_path}...")
    try:
        config = load_config(config_path)
        settings = workflow_settings(config)
    except ConfigError as e:
        print(f"FAIL: {e}")
        return 1
    print(
        f"OK: uploads up to {settings.max_upload_bytes} bytes of "
        f"{', '.join(sorted(settings.allowed_mime_types))}; "
        f"{settings.max_attempts} attempts per external call."
    )

    backend = (config["storage"].get("backend") or "memory")
    if backend != "mongodb":
        print(f"OK: storage backend is '{backend}'; MONGODB_URI not needed.")
        return 0

    try:
        uri = get_mongodb_uri()
    except ConfigError as e:
        print(f"FAIL: {e}")
        return 1
    if not is_valid_mongodb_uri(uri):
        print("FAIL: MONGODB_URI does not look like a MongoDB URI (expected mongodb:// or mongodb+srv://, no spaces).")
        return 1
    print("OK: MONGODB_URI is set and format is valid.")

    # Ping without printing the URI
    client = get_client(uri)
    try:
        client.admin.command("ping")
        print("OK: Successfully connected to MongoDB (ping succeeded).")
    except PyMongoError as e:
        print(f"FAIL: Could not connect to MongoDB: {e}")
        return 1
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
