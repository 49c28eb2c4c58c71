#
# src/gauntlet/reporters/collect.py
#
"""
In-memory reporter, mainly for embedding the engine and for its own tests.
"""
from gauntlet.runtime.events import Event, EventType


class CollectingReporter:
    """Keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def on_event(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, *types: EventType) -> list[Event]:
        return [e for e in self.events if e.type in types]

    @property
    def types(self) -> list[EventType]:
        return [e.type for e in self.events]
