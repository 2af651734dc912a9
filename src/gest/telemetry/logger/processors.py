#
# src/gest/telemetry/logger/processors.py
#
"""
Custom structlog processors used by the gest logging setup.
"""
import logging
from typing import Any

from structlog.typing import EventDict, WrappedLogger

LEVEL_EMOJIS: dict[str, str] = {
    "debug": "🐛",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "critical": "💥",
}


def add_emoji_processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Prefixes the event with an emoji for its level, or an explicit `emoji` key."""
    emoji = event_dict.pop("emoji", None)
    if emoji is None:
        level = event_dict.get("level") or method_name
        emoji = LEVEL_EMOJIS.get(str(level).lower(), "➡️")
    event = event_dict.get("event")
    if isinstance(event, str) and not event.startswith(emoji):
        event_dict["event"] = f"{emoji} {event}"
    return event_dict


def remove_extra_keys_processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Drops private (underscore-prefixed) context keys before rendering."""
    for key in [k for k in event_dict if k.startswith("_") and k not in ("_record", "_from_structlog")]:
        event_dict.pop(key, None)
    return event_dict


def level_to_int(level: Any) -> int:
    """Converts a level name or number into a stdlib logging level."""
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).upper())
    return numeric if isinstance(numeric, int) else logging.INFO

# 🔼⚙️
