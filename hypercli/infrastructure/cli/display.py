import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hypercli.domain.interfaces.user_interface import UserInterface

logger = logging.getLogger(__name__)

class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output.

    Results go to stdout; errors, warnings and info panels go to stderr so
    that piping ``--json`` output stays clean.
    """

    def __init__(self, console: Optional[Console] = None, error_console: Optional[Console] = None):
        """Initializes the rich Consoles."""
        self.console = console or Console()
        self.error_console = error_console or Console(stderr=True)

    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays a plain result line.

        Args:
            output: The string to display.
            **kwargs: Additional arguments including:
                - style: Rich style applied to the text
        """
        style = kwargs.get("style")
        self.console.print(Text(str(output), style=style) if style else str(output))

    def display_json(self, data: Any) -> None:
        """Writes JSON without rich markup so the output is machine-parseable."""
        self.console.print_json(json.dumps(data, default=str))

    def display_table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
    ) -> None:
        """Displays rows as a rich table.

        Args:
            title: Caption shown above the table.
            columns: Column headers.
            rows: One sequence of cell values per row.
        """
        logger.debug(f"Displaying table '{title}' with {len(rows)} rows")
        table = Table(title=title, show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1))
        for column in columns:
            table.add_column(column, style="white")
        for row in rows:
            table.add_row(*["" if cell is None else str(cell) for cell in row])
        self.console.print(table)

    def display_error(
        self,
        error_message: str,
        suggestions: Optional[List[Dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> None:
        """Displays an error message in a distinct style, followed by suggestions.

        Args:
            error_message: The error message to display.
            suggestions: Dicts with a ``description`` and optional ``command``.
        """
        body = Text(error_message, style="white")
        for index, suggestion in enumerate(suggestions or [], 1):
            body.append(f"\n  {index}. {suggestion.get('description', '')}", style="yellow")
            if suggestion.get("command"):
                body.append(f"  $ {suggestion['command']}", style="bold cyan")
        panel = Panel(
            body,
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self.error_console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message.

        Args:
            info_message: The informational message to display.
        """
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1)
        )
        self.error_console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message.

        Args:
            warning_message: The warning message to display.
        """
        logger.warning(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1)
        )
        self.error_console.print(panel)
