"""Chat message templates (HTML parse mode).

Keeping every outbound text here prevents drift between the reconciliation
engine and the intake dialog. Provider and user supplied values are escaped.
"""

from __future__ import annotations

import html
from datetime import datetime
from typing import Iterable, Optional

from core.models import Shipment, TrackingSnapshot
from core.normalizer import status_emoji

PARSE_MODE = "HTML"

STATUS_UPDATED_FALLBACK = "Status updated"
NO_EVENTS_YET = "No tracking events yet."
NO_UPDATES_YET = "No updates yet"


def _timestamp(now: datetime) -> str:
    return now.astimezone().strftime("%H:%M:%S %d-%m-%Y").strip()


def welcome_text() -> str:
    return "\n".join(
        [
            "🎉 <b>Welcome to PackTrack!</b>",
            "",
            "I track your packages from Temu, Shein, AliExpress and Alibaba and "
            "notify you whenever something changes. 📦",
            "",
            "<b>How it works:</b>",
            "📍 Send me your tracking number",
            "🔄 I'll track it automatically",
            "🚚 Receive update and delivery notifications",
            "",
            "<b>Commands:</b>",
            "/help - Show help information",
            "/list - View your tracked packages",
            "/stop - Stop notifications for a package",
            "",
            "<b>Please send me a tracking number to get started!</b> 👇",
        ]
    )


def help_text() -> str:
    return "\n".join(
        [
            "🤖 <b>PackTrack Help</b>",
            "",
            "<b>Commands:</b>",
            "/start - Start the bot and add tracking",
            "/help - Show this help message",
            "/list - View your tracked packages",
            "/stop &lt;number&gt; - Stop notifications for a package",
            "",
            "<b>Supported formats:</b>",
            "📦 Temu / AliExpress (YT...)",
            "🛍️ Shein (LB...CN)",
            "🏭 Alibaba (LP...CN)",
            "✉️ Postal (AA123456789CN)",
            "",
            "You can send several numbers at once, separated by spaces, commas or new lines.",
            "",
            "<b>Just send me a tracking number anytime!</b>",
        ]
    )


def unknown_command_text() -> str:
    return "\n".join(
        [
            "❓ <b>Unknown command</b>",
            "",
            "Use these commands:",
            "/start - Start tracking packages",
            "/help - Show help",
            "/list - View tracked packages",
            "",
            "Or send me a tracking number! 📦",
        ]
    )


def empty_batch_text() -> str:
    return "❌ No tracking number found. Please send a valid tracking number."


def more_packages_text() -> str:
    return "\n".join(
        [
            "📦 <b>Add more packages?</b>",
            "",
            "Send me another tracking number or use:",
            "/list - View tracked packages",
            "/help - Show help menu",
        ]
    )


def error_text() -> str:
    return "❌ An error occurred. Please try again."


def invalid_format_entry(tracking_number: str) -> str:
    return f"⚠️ <b>{html.escape(tracking_number)}</b>: Invalid tracking number format."


def already_tracked_entry(tracking_number: str) -> str:
    return f"📦 <b>{html.escape(tracking_number)}</b>: Already being tracked!"


def fetch_failed_entry(tracking_number: str) -> str:
    return (
        f"❌ <b>{html.escape(tracking_number)}</b>: Unable to fetch tracking information. "
        "Please check the number and try again."
    )


def add_failed_entry(tracking_number: str) -> str:
    return f"❌ <b>{html.escape(tracking_number)}</b>: Error occurred while adding to tracking."


def added_entry(snapshot: TrackingSnapshot) -> str:
    latest = snapshot.latest_event
    description = latest.description if latest and latest.description else NO_EVENTS_YET
    return "\n".join(
        [
            f"✅ <b>{html.escape(snapshot.tracking_number)}</b> - Successfully added to tracking!",
            "",
            f"📊 <b>Status:</b> {snapshot.status.value}",
            f"📝 <b>Latest Update:</b> {html.escape(description)}",
            "🔔 <b>Notifications:</b> Enabled",
            "",
            "I'll keep you updated on any changes!",
        ]
    )


def join_entries(entries: Iterable[str]) -> str:
    return "\n\n".join(entries)


def shipment_list_text(shipments: list[Shipment]) -> str:
    if not shipments:
        return "\n".join(
            [
                "📦 <b>No Tracked Packages</b>",
                "",
                "You don't have any packages being tracked yet.",
                "",
                "Send me a tracking number to get started! 👇",
            ]
        )

    blocks = [f"📦 <b>Your Tracked Packages ({len(shipments)})</b>"]
    for shipment in shipments:
        latest = shipment.latest_event
        description = latest.description if latest and latest.description else NO_UPDATES_YET
        updated = shipment.updated_at or shipment.created_at
        updated_label = updated.astimezone().strftime("%d-%m-%Y") if updated else "-"
        blocks.append(
            "\n".join(
                [
                    f"{status_emoji(shipment.status)} <b>{html.escape(shipment.tracking_number)}</b>",
                    f"📊 Status: {shipment.status.value.upper()}",
                    f"📝 Latest: {html.escape(description)}",
                    f"🕐 Last Updated: {updated_label}",
                ]
            )
        )
    blocks.append("💡 Use /stop &lt;number&gt; to stop notifications for a package")
    return "\n\n".join(blocks)


def delivered_text(shipment: Shipment, description: str, now: datetime) -> str:
    return "\n".join(
        [
            "🎉 <b>Package Delivered!</b>",
            "",
            f"📦 <b>Tracking:</b> {html.escape(shipment.tracking_number)}",
            "✅ <b>Status:</b> DELIVERED",
            f"📝 <b>Description:</b> {html.escape(description)}",
            f"🕐 <b>Time:</b> {_timestamp(now)}",
            "",
            "Your package has been successfully delivered! 🚚📬",
            "",
            "Use /list to see all your packages.",
        ]
    )


def update_text(shipment: Shipment, description: str, has_new_events: bool, now: datetime) -> str:
    lines = [
        "📦 <b>Package Update</b>",
        "",
        f"🔢 <b>Tracking:</b> {html.escape(shipment.tracking_number)}",
        f"📊 <b>Status:</b> {shipment.status.value.upper()}",
        f"📝 <b>Latest Update:</b> {html.escape(description)}",
        f"🕐 <b>Time:</b> {_timestamp(now)}",
    ]
    if has_new_events:
        lines.extend(["", "🆕 New tracking event detected!"])
    lines.extend(["", "Use /list to see all your packages."])
    return "\n".join(lines)


def package_added_text(shipment: Shipment) -> str:
    lines = [
        "📦 New package added for tracking!",
        "",
        f"🔢 {html.escape(shipment.tracking_number)}",
        f"🚚 {html.escape(shipment.carrier.value)}",
    ]
    if shipment.description:
        lines.append(f"📝 {html.escape(shipment.description)}")
    return "\n".join(lines)


def stop_usage_text() -> str:
    return "Usage: /stop &lt;tracking number&gt;\n\nUse /list to see your packages."


def stop_done_text(tracking_number: str) -> str:
    return f"🔕 <b>{html.escape(tracking_number)}</b>: Notifications stopped."


def stop_not_found_text(tracking_number: Optional[str]) -> str:
    return f"❌ <b>{html.escape(tracking_number or '')}</b>: Not found among your packages."
