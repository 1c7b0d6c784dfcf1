import hashlib
import json
import logging
import os
from functools import lru_cache

import yaml
from dotenv import load_dotenv

from constants import (
    DEFAULT_MAX_WORKERS,
    DEFAULT_REFRESH_MINUTES,
    DEFAULT_REQUEST_TIMEOUT,
    STATE_CLOSED,
    STATE_PALETTE,
    STATE_REMOVED,
    STATE_RESOLVED,
    WORK_ITEM_TYPE,
)
from devops.client import Collection

load_dotenv()


def config_path():
    return os.getenv("WORKLOAD_CONFIG", "config.yml")


@lru_cache(maxsize=1)
def load_config(path=None):
    """Load configuration data from ``path`` and cache the result."""
    path = path or config_path()
    if not os.path.exists(path):
        logging.warning("Config file %s not found; no collections configured", path)
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _token_for(entry):
    if entry.get("pat"):
        return entry["pat"]
    if entry.get("pat_env"):
        return os.getenv(entry["pat_env"], "")
    return os.getenv("AZURE_DEVOPS_PAT", "")


def get_collections(config=None):
    """Return every fully populated collection descriptor from the config.

    Each entry may carry its own ``server_url``; otherwise the top-level
    ``server_url`` is shared. Incomplete entries are logged and skipped.
    """
    config = load_config() if config is None else config
    shared_url = config.get("server_url") or os.getenv("AZURE_DEVOPS_URL", "")
    collections = []
    for entry in config.get("collections", []) or []:
        if isinstance(entry, str):
            entry = {"name": entry}
        server_url = (entry.get("server_url") or shared_url or "").rstrip("/")
        name = entry.get("name") or ""
        token = _token_for(entry)
        if not (server_url and name and token):
            logging.warning("Skipping incomplete collection entry %r", name or entry)
            continue
        collections.append(Collection(server_url=server_url, name=name, token=token))
    return collections


def has_complete_collection(config=None) -> bool:
    return bool(get_collections(config))


def get_settings(config=None) -> dict:
    """Return tunables with defaults applied."""
    config = load_config() if config is None else config
    states = config.get("states", {}) or {}
    return {
        "request_timeout": float(config.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        "max_workers": int(config.get("max_workers", DEFAULT_MAX_WORKERS)),
        "target_date_only": bool(config.get("target_date_only", False)),
        "member_identity": config.get("member_identity", "display_name"),
        "refresh_minutes": int(config.get("refresh_minutes", DEFAULT_REFRESH_MINUTES)),
        "work_item_type": config.get("work_item_type", WORK_ITEM_TYPE),
        "resolved_state": states.get("resolved", STATE_RESOLVED),
        "closed_state": states.get("closed", STATE_CLOSED),
        "removed_state": states.get("removed", STATE_REMOVED),
        "palette": config.get("palette") or STATE_PALETTE,
    }


def config_fingerprint(config=None) -> str:
    """Hash of the collection descriptors, used to detect config changes."""
    collections = get_collections(config)
    payload = json.dumps(
        [[c.server_url, c.name, c.token] for c in collections], sort_keys=True
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
