"""Application entry point for the packtrack bot."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

from art import tprint
from telethon import events

import settings
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_bot_notifier import TelegramBotMessenger
from adapters.telegram_mapper import build_inbound
from adapters.telegram_notifier import TelethonMessenger
from adapters.track17_gateway import Track17Gateway
from client import build_client
from core.config import DialogConfig, ReconcileConfig
from core.dialog import DialogStateCache
from core.intake import ConversationalIntake
from core.pacing import FixedDelayPacer
from core.ports import MessengerPort
from core.reconciler import ReconciliationEngine
from core.registration import ShipmentRegistrar

NAME = "PACKTRACK"
FONT = "tarty-1"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
MASK = "***"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Mask secret values anywhere in the rendered record, tracebacks included.

    Bot API URLs embed the bot token, so urllib errors would otherwise leak it.
    """

    def __init__(self, secrets: Iterable[str], fmt: str = LOG_FORMAT, datefmt: Optional[str] = LOG_DATEFMT) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first so a secret that contains another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        rendered = super().format(record)
        for secret in self._secrets:
            rendered = rendered.replace(secret, MASK)
        return rendered


def _collect_redaction_values(config: dict) -> list[str]:
    """Resolve the configured environment variable names to their values."""

    redact = (config or {}).get("redact", {})
    if not redact.get("enabled", False):
        return []
    found = {os.environ[name] for name in redact.get("patterns", []) if os.environ.get(name)}
    return sorted(found, key=len, reverse=True)


def _file_handler(file_cfg: dict) -> logging.Handler:
    path = file_cfg.get("path", "logs/packtrack.log")
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_file_handler(file_cfg))
    if not handlers:
        return

    formatter = _RedactingFormatter(_collect_redaction_values(config))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers)


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise RuntimeError(f"{name} is required in environment")
    return value


def _build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH, timeout_seconds=settings.DB_TIMEOUT_SECONDS)
    storage.init_db()
    return storage


def _build_gateway() -> Track17Gateway:
    return Track17Gateway(
        api_key=_require(settings.TRACK17_API_KEY, "TRACK17_API_KEY"),
        base_url=settings.PROVIDER_BASE_URL,
        timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
    )


def _build_bot_messenger() -> TelegramBotMessenger:
    return TelegramBotMessenger(
        bot_token=_require(settings.BOT_TOKEN, "BOT_TOKEN"),
        timeout_seconds=settings.NOTIFICATION_TIMEOUT_SECONDS,
    )


def _build_engine(storage: SQLiteStorage, gateway: Track17Gateway, messenger: MessengerPort) -> ReconciliationEngine:
    reconcile_config = ReconcileConfig(delay_seconds=settings.RECONCILE_DELAY_SECONDS)
    return ReconciliationEngine(
        shipments=storage,
        gateway=gateway,
        messenger=messenger,
        pacer=FixedDelayPacer(reconcile_config.delay_seconds),
    )


def _build_intake(storage: SQLiteStorage, gateway: Track17Gateway, messenger: MessengerPort) -> ConversationalIntake:
    dialog_config = DialogConfig(
        ttl_minutes=settings.DIALOG_TTL_MINUTES,
        max_entries=settings.DIALOG_MAX_ENTRIES,
    )
    return ConversationalIntake(
        shipments=storage,
        users=storage,
        gateway=gateway,
        messenger=messenger,
        dialogs=DialogStateCache(dialog_config),
    )


def _select_messenger(client) -> MessengerPort:
    method = settings.NOTIFICATION_METHOD
    if method == "client":
        return TelethonMessenger(client)
    if method == "bot_api":
        return _build_bot_messenger()
    raise RuntimeError("notifications.method must be 'bot_api' or 'client'")


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    bot_token = _require(settings.BOT_TOKEN, "BOT_TOKEN")
    storage = _build_storage()
    gateway = _build_gateway()

    client = build_client()
    messenger = _select_messenger(client)
    intake = _build_intake(storage, gateway, messenger)
    logger.info("Replies and notifications go through %s", settings.NOTIFICATION_METHOD)

    @client.on(events.NewMessage(incoming=True, func=lambda e: e.is_private or e.is_group))
    async def on_message(event) -> None:
        sender = await event.get_sender()
        if getattr(sender, "bot", False):
            return
        try:
            await intake.handle(await build_inbound(event))
        except Exception:
            logger.exception("Failed to handle message in chat %s", event.chat_id)

    client.start(bot_token=bot_token)
    logger.info("Bot session started; waiting for messages")
    client.run_until_disconnected()


def _serve() -> None:
    import uvicorn

    from adapters.http_api import create_app

    _print_banner()
    _configure_logging()
    logging.getLogger(__name__).info("Starting packtrack HTTP surface")

    storage = _build_storage()
    gateway = _build_gateway()
    messenger = _build_bot_messenger()
    app = create_app(
        intake=_build_intake(storage, gateway, messenger),
        engine=_build_engine(storage, gateway, messenger),
        registrar=ShipmentRegistrar(storage, storage, gateway, messenger),
        cron_secret=_require(settings.CRON_SECRET, "CRON_SECRET"),
    )
    uvicorn.run(app, host=settings.SERVER_HOST, port=settings.SERVER_PORT)


def _reconcile() -> None:
    _configure_logging()
    storage = _build_storage()
    engine = _build_engine(storage, _build_gateway(), _build_bot_messenger())
    report = asyncio.run(engine.run_pass())
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="packtrack")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot as a Telethon client")
    subparsers.add_parser("serve", help="Serve the webhook and reconciliation trigger over HTTP")
    subparsers.add_parser("reconcile", help="Run one reconciliation pass and print the report")

    args = parser.parse_args(argv)
    if args.command == "serve":
        _serve()
        return
    if args.command == "reconcile":
        _reconcile()
        return
    _run()


if __name__ == "__main__":
    main()
