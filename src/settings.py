"""Static configuration for packtrack.

All user-editable settings (database, provider, pacing, dialog, delivery,
server, logging) live in a single JSON file for quick edits without touching
Python. Secrets stay in the environment (.env).
"""

import json
import os

from dotenv import load_dotenv

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.environ.get("PACKTRACK_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


load_dotenv()

_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database.
_database = _CONFIG.get("database", {})
DB_PATH = _resolve_path(_database.get("path", "packtrack.db"))
DB_TIMEOUT_SECONDS = float(_database.get("timeout_seconds", 5))

# Tracking provider (17TRACK) endpoint and request timeout.
_provider = _CONFIG.get("provider", {})
PROVIDER_BASE_URL = _provider.get("base_url", "https://api.17track.net/track/v2.2")
PROVIDER_TIMEOUT_SECONDS = float(_provider.get("timeout_seconds", 15))

# Delay between shipments in a reconciliation pass, to stay under provider
# rate limits.
_reconcile = _CONFIG.get("reconcile", {})
RECONCILE_DELAY_SECONDS = float(_reconcile.get("delay_seconds", 1.0))

# Idle dialogs revert to Idle after the TTL; the map is capped in size.
_dialog = _CONFIG.get("dialog", {})
DIALOG_TTL_MINUTES = int(_dialog.get("ttl_minutes", 30))
DIALOG_MAX_ENTRIES = int(_dialog.get("max_entries", 10000))

# Delivery method switches messenger adapters without changing core logic.
# - "bot_api": HTTP Bot API (webhook deployments)
# - "client": the bot's own Telethon session
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("method", "bot_api")
NOTIFICATION_TIMEOUT_SECONDS = float(_notifications.get("timeout_seconds", 10))

# HTTP surface for the webhook and the reconciliation trigger.
_server = _CONFIG.get("server", {})
SERVER_HOST = _server.get("host", "0.0.0.0")
SERVER_PORT = int(_server.get("port", 8000))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})

# Secrets.
BOT_TOKEN = os.getenv("BOT_TOKEN")
TRACK17_API_KEY = os.getenv("TRACK17_API_KEY")
CRON_SECRET = os.getenv("CRON_SECRET")

# Telethon application credentials, only needed for `packtrack run`.
API_ID = os.getenv("API_ID")
API_HASH = os.getenv("API_HASH")
SESSION_NAME = os.getenv("SESSION_NAME", "packtrack")
