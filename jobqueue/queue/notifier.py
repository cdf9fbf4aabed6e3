"""
Change notification seam between the queue engine and its observers.
"""

from typing import Protocol


class ChangeNotifier(Protocol):
    """
    Receives a signal after every submission and state transition.

    ``notify`` must return immediately; delivery is best-effort and the
    engine never waits for, or learns about, the outcome.
    """

    def notify(self) -> None: ...


class NullNotifier:
    """Notifier for headless processes with no subscribers."""

    def notify(self) -> None:
        pass
