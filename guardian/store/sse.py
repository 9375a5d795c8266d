"""
Server-Sent Events framing shared by the gateway and the remote client.
"""

import json
from typing import Any, List, Optional, Tuple


def format_event(event: str, data: Any) -> str:
    """Frame one event for a text/event-stream body."""
    payload = json.dumps(data, separators=(",", ":"))
    return f"event: {event}\ndata: {payload}\n\n"


def format_comment(text: str) -> str:
    return f": {text}\n\n"


class SseParser:
    """
    Incremental parser fed one line at a time (without the line terminator).

    Returns ``(event, data)`` when a blank line completes an event. Comment
    lines and events without data are ignored.
    """

    def __init__(self):
        self._event = "message"
        self._data: List[str] = []

    def feed(self, line: str) -> Optional[Tuple[str, Any]]:
        line = line.rstrip("\r")

        if not line:
            if not self._data:
                self._event = "message"
                return None
            event, raw = self._event, "\n".join(self._data)
            self._event, self._data = "message", []
            try:
                return event, json.loads(raw)
            except ValueError:
                return event, raw

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        return None
