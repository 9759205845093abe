"""Interface for presenting results to the user.

Defines the contract for displaying output, tables, errors, warnings and
informational messages, allowing different UI implementations (e.g.,
console, JSON-only).
"""

import abc
from typing import Any, Dict, List, Optional, Sequence


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user (the primary output channel).

        Args:
            output: The string to display.
            **kwargs: Additional arguments for formatting (e.g., style).
        """
        pass

    @abc.abstractmethod
    def display_json(self, data: Any) -> None:
        """Writes machine-readable JSON to the primary output channel."""
        pass

    @abc.abstractmethod
    def display_table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        """Displays tabular data.

        Args:
            title: Caption shown above the table.
            columns: Column headers.
            rows: One sequence of cell values per row.
        """
        pass

    @abc.abstractmethod
    def display_error(
        self,
        error_message: str,
        suggestions: Optional[List[Dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> None:
        """Displays an error message, with optional suggested fixes.

        Args:
            error_message: The error message string.
            suggestions: Dicts with a ``description`` and optional ``command``.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user.

        Args:
            warning_message: The warning message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user.

        Args:
            info_message: The informational message string.
            **kwargs: Additional arguments for formatting.
        """
        pass
