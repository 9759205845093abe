"""Interface for receiving diagnostic events.

Retry and cache components publish typed events here instead of printing;
the default observer drops them.
"""

import abc
import logging

from hypercli.domain.events.diagnostic_events import DiagnosticEvent

logger = logging.getLogger(__name__)


class DiagnosticObserver(abc.ABC):
    """Abstract Base Class for diagnostic event sinks."""

    @abc.abstractmethod
    def emit(self, event: DiagnosticEvent) -> None:
        """Receives one event. Must not raise."""
        pass


class NullObserver(DiagnosticObserver):
    """Observer that ignores every event."""

    def emit(self, event: DiagnosticEvent) -> None:
        return None


def emit_safely(observer: DiagnosticObserver, event: DiagnosticEvent) -> None:
    """Delivers ``event``; a failing observer never breaks the caller."""
    try:
        observer.emit(event)
    except Exception as e:
        logger.debug(f"Diagnostic observer failed on {event.event}: {e}")
