#
# src/gauntlet/reporters/protocols.py
#
"""
Defines the protocol every reporter implements.
"""
from typing import Protocol, runtime_checkable

from gauntlet.runtime.events import Event


@runtime_checkable
class Reporter(Protocol):
    """
    A pure event sink. Reporters see events in emission order and never
    influence the run; an exception raised here is logged and ignored.
    """

    def on_event(self, event: Event) -> None:
        """
        Handles one lifecycle event.

        Args:
            event: The event, carrying a monotonically increasing `seq`.
        """
        ...

# 🔼⚙️
