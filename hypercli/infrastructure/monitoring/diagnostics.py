"""Observer that writes diagnostic events as JSON log records."""

import json
import logging
from typing import Optional

from hypercli.domain.events.diagnostic_events import DiagnosticEvent
from hypercli.domain.interfaces.observer import DiagnosticObserver
from hypercli.infrastructure.monitoring.logger_setup import DIAGNOSTICS_LOGGER_NAME

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingObserver(DiagnosticObserver):
    """Serializes each event with ``to_record()`` onto the diagnostics logger."""

    def __init__(self, diagnostics_logger: Optional[logging.Logger] = None):
        self.logger = diagnostics_logger or logging.getLogger(DIAGNOSTICS_LOGGER_NAME)

    def emit(self, event: DiagnosticEvent) -> None:
        record = event.to_record()
        level = _LEVELS.get(record.get("level", "debug"), logging.DEBUG)
        if self.logger.isEnabledFor(level):
            self.logger.log(level, json.dumps(record, default=str, sort_keys=True))
