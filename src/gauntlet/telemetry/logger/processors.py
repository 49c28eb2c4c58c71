# src/gauntlet/telemetry/logger/processors.py

"""
Custom structlog processors used by gauntlet's logging pipeline.
"""

import logging

from structlog.typing import EventDict, WrappedLogger

LEVEL_EMOJIS = {
    "debug": "🐛",
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "❌",
    "critical": "💥",
}

# Keys bound with this prefix are engine-internal and never rendered.
_PRIVATE_PREFIX = "_"


def add_emoji_processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Prefixes the event message with an emoji, either explicit or derived from the level."""
    emoji = event_dict.pop("emoji", None)
    if emoji is None:
        level = event_dict.get("level", method_name)
        if isinstance(level, int):
            level = logging.getLevelName(level)
        emoji = LEVEL_EMOJIS.get(str(level).lower())
    event = event_dict.get("event")
    if emoji and isinstance(event, str):
        event_dict["event"] = f"{emoji} {event}"
    return event_dict


def remove_extra_keys_processor(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Drops internal bookkeeping keys before rendering."""
    for key in [k for k in event_dict if k.startswith(_PRIVATE_PREFIX)]:
        event_dict.pop(key, None)
    return event_dict
