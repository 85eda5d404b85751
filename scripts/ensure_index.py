#!/usr/bin/env python3
"""
Create the workflow indexes on MongoDB: the unique asset claim per claimant, the review queue,
per-session lookups and the audit log. Existing indexes are left as they are.

  python -m scripts.ensure_index                 # uses config/config.yaml, else the example
  python -m scripts.ensure_index --config path.yaml
  python -m scripts.ensure_index --plan          # print the indexes without connecting

MONGODB_URI comes from .env or the environment.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from dotenv import load_dotenv
load_dotenv(_PROJECT_ROOT / ".env")

from pymongo.errors import OperationFailure

from estateclaims.config_loader import ConfigError, load_config
from estateclaims.db import collection_names, get_client, get_database
from estateclaims.indexes import WORKFLOW_INDEXES, ensure_workflow_indexes


def _resolve_config(path: str | None) -> Path:
    if path:
        return Path(path)
    default = _PROJECT_ROOT / "config" / "config.yaml"
    return default if default.exists() else _PROJECT_ROOT / "config" / "config.example.yaml"


def _print_plan(config: dict) -> None:
    names = collection_names(config)
    for logical, key, name, unique in WORKFLOW_INDEXES:
        fields = ", ".join(f"{field} {'asc' if direction == 1 else 'desc'}" for field, direction in key)
        print(f"{names[logical]}.{name}: ({fields}){' unique' if unique else ''}")


def main() -> int:
    ap = argparse.ArgumentParser(description="Create the workflow indexes on MongoDB")
    ap.add_argument("--config", default=None, help="Path to the YAML config")
    ap.add_argument("--plan", action="store_true", help="Print the indexes and exit without connecting")
    args = ap.parse_args()

    try:
        config = load_config(_resolve_config(args.config), require_uri=not args.plan)
    except ConfigError as e:
        print(f"FAIL: {e}")
        return 1

    if args.plan:
        _print_plan(config)
        return 0

    client = get_client(config["mongodb"]["uri"])
    try:
        db = get_database(client, config)
        existing = {
            name: set(db[name].index_information())
            for name in set(collection_names(config).values())
            if name in db.list_collection_names()
        }
        for name in ensure_workflow_indexes(db, config):
            already = any(name in indexes for indexes in existing.values())
            print(f"{'Exists' if already else 'Created'}: {name}")
        return 0
    except OperationFailure as e:
        if e.code == 13:
            print("Not authorized to create indexes. The database user needs readWrite on this database.")
            return 1
        raise
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
