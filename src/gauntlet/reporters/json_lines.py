#
# src/gauntlet/reporters/json_lines.py
#
"""
Writes each event as one JSON object per line.
"""
import json
import sys
from typing import TextIO

from gauntlet.runtime.events import Event


class JsonLinesReporter:
    """Streams events to a text stream (stdout by default) as JSON lines."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout

    def on_event(self, event: Event) -> None:
        self._stream.write(json.dumps(event.to_dict(), default=str) + "\n")
        self._stream.flush()
