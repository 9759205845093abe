"""Main entry point for the hypercli application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.

Dependencies are built once per invocation in the top-level callback and
passed to commands through ``ctx.obj``; nothing is created at import time.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, Optional, TypeVar

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from hypercli.core.command_handler import EXIT_USER_ERROR, CommandHandler
from hypercli.core.services.fetch_service import FetchService
from hypercli.core.services.resolver_service import ResolverEngine
from hypercli.core.services.sync_service import SYNC_MAX_RETRIES, SyncService

# --- Domain Layer ---
from hypercli.domain.errors import HyperCliError, ValidationError
from hypercli.domain.interfaces.observer import DiagnosticObserver, NullObserver
from hypercli.domain.interfaces.remote import RemoteGateway, load_gateway_factory
from hypercli.domain.interfaces.user_interface import UserInterface
from hypercli.domain.models.settings import CoreSettings

# --- Infrastructure Layer ---
from hypercli.infrastructure.cache.response_cache import ResponseCache
from hypercli.infrastructure.cache.workspace_cache import WorkspaceCache
from hypercli.infrastructure.cli.display import ConsoleDisplay
from hypercli.infrastructure.config.settings import (
    REMOTE_FACTORY_KEY,
    env_var_for,
    get_config,
    get_remote_factory,
    load_configuration,
    load_core_settings,
)
from hypercli.infrastructure.monitoring.diagnostics import LoggingObserver
from hypercli.infrastructure.monitoring.logger_setup import (
    DEFAULT_LOG_FORMAT,
    configure_diagnostics,
    setup_logging,
)
from hypercli.infrastructure.resilience.api_retry import RetryExecutor
from hypercli.infrastructure.resilience.circuit_breaker import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


# --- Dependency Injection Container (Manual) ---

def build_gateway() -> Optional[RemoteGateway]:
    """Instantiates the RemoteGateway named by the ``remote.factory`` setting.

    Returns:
        The gateway, or None when no factory is configured (local-only mode).

    Raises:
        ValidationError: The factory cannot be imported or fails to build a gateway.
    """
    factory_ref = get_remote_factory()
    if not factory_ref:
        logger.debug("No remote factory configured; running with local stages only.")
        return None
    try:
        factory = load_gateway_factory(factory_ref)
        gateway = factory()
    except (ImportError, AttributeError, ValueError, TypeError) as e:
        raise ValidationError(
            f"Could not create the remote gateway from '{factory_ref}': {e}",
            suggestions=[{
                "description": f"Check {env_var_for(REMOTE_FACTORY_KEY)} or '{REMOTE_FACTORY_KEY}' in config.yaml",
            }],
        ) from e
    if not isinstance(gateway, RemoteGateway):
        raise ValidationError(f"Remote factory '{factory_ref}' did not return a RemoteGateway.")
    logger.info(f"Remote gateway created: {type(gateway).__name__}")
    return gateway


def create_dependencies(
    settings: CoreSettings,
    ui: Optional[UserInterface] = None,
    gateway: Optional[RemoteGateway] = None,
    observer: Optional[DiagnosticObserver] = None,
) -> Dict[str, Any]:
    """Creates and wires up all dependencies for one invocation.

    This acts as the Composition Root.
    """
    logger.debug("Initializing application dependencies...")
    dependencies: Dict[str, Any] = {}

    dependencies['settings'] = settings
    dependencies['ui'] = ui or ConsoleDisplay()
    dependencies['observer'] = observer or (LoggingObserver() if settings.verbose else NullObserver())

    # Caches
    dependencies['response_cache'] = ResponseCache(
        capacity=settings.cache_capacity,
        default_ttl_ms=settings.default_ttl_ms,
        namespace_ttls_ms=settings.namespace_ttls_ms,
        enabled=settings.cache_enabled,
        observer=dependencies['observer'],
        disk_dir=settings.disk_cache_dir,
    )
    dependencies['workspace_cache'] = WorkspaceCache(settings.workspace_cache_path)

    # Resilience
    dependencies['breakers'] = CircuitBreakerRegistry(
        failure_threshold=settings.breaker_threshold,
        cooldown_ms=settings.breaker_cooldown_ms,
        backoff_factor=settings.breaker_backoff_factor,
        max_cooldown_ms=settings.breaker_max_cooldown_ms,
    )
    dependencies['executor'] = RetryExecutor(
        breakers=dependencies['breakers'],
        policy=settings.retry_policy(),
        observer=dependencies['observer'],
    )

    # Core services
    dependencies['gateway'] = gateway if gateway is not None else build_gateway()
    dependencies['fetch_service'] = FetchService(
        response_cache=dependencies['response_cache'],
        executor=dependencies['executor'],
    )
    dependencies['resolver'] = ResolverEngine(
        workspace_cache=dependencies['workspace_cache'],
        fetch_service=dependencies['fetch_service'],
        gateway=dependencies['gateway'],
    )
    dependencies['sync_service'] = SyncService(
        gateway=dependencies['gateway'],
        workspace_cache=dependencies['workspace_cache'],
        response_cache=dependencies['response_cache'],
        executor=dependencies['executor'],
        policy=settings.retry_policy(max_retries=max(settings.max_retries, SYNC_MAX_RETRIES)),
    )

    dependencies['command_handler'] = CommandHandler(
        resolver=dependencies['resolver'],
        sync_service=dependencies['sync_service'],
        workspace_cache=dependencies['workspace_cache'],
        response_cache=dependencies['response_cache'],
        ui=dependencies['ui'],
        breakers=dependencies['breakers'],
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="hypercli",
    help="hypercli: resolve resource URLs, ids and names, with caching and resilient remote calls.",
    add_completion=False,
    no_args_is_help=True,
)


# --- Helper for Running Async Commands ---
def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Runs an async handler from a sync Typer command."""
    return asyncio.run(coro)


def _handler(ctx: typer.Context) -> CommandHandler:
    return ctx.obj['command_handler']


# --- CLI Commands ---

JsonOption = Annotated[
    bool,
    typer.Option("--json", "-j", help="Print machine-readable JSON on stdout."),
]

TimeoutOption = Annotated[
    Optional[float],
    typer.Option("--timeout", "-t", min=0.0, help="Give up after this many seconds."),
]


@app.command()
def resolve(
    ctx: typer.Context,
    reference: Annotated[str, typer.Argument(help="Resource URL, id, title or alias.")],
    json_output: JsonOption = False,
    timeout: TimeoutOption = None,
):
    """Resolve a URL, id, title or alias to a canonical resource id."""
    code = run_async(_handler(ctx).handle_resolve(reference, as_json=json_output, timeout_s=timeout))
    raise typer.Exit(code=code)


@app.command()
def aliases(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="A resource title, e.g. 'Tasks Database'.")],
    json_output: JsonOption = False,
):
    """Show the search aliases generated for a title."""
    raise typer.Exit(code=_handler(ctx).handle_aliases(title, as_json=json_output))


@app.command(name="list")
def list_command(
    ctx: typer.Context,
    json_output: JsonOption = False,
):
    """List resources in the local workspace cache."""
    raise typer.Exit(code=_handler(ctx).handle_list(as_json=json_output))


@app.command()
def sync(
    ctx: typer.Context,
    json_output: JsonOption = False,
    timeout: TimeoutOption = None,
):
    """Rebuild the local workspace cache from the remote API."""
    code = run_async(_handler(ctx).handle_sync(as_json=json_output, timeout_s=timeout))
    raise typer.Exit(code=code)


@app.command(name="cache-info")
def cache_info_command(
    ctx: typer.Context,
    json_output: JsonOption = False,
):
    """Show workspace cache freshness and response cache statistics."""
    raise typer.Exit(code=_handler(ctx).handle_cache_info(as_json=json_output))


@app.command(name="clear-cache")
def clear_cache_command(
    ctx: typer.Context,
    namespace: Annotated[
        Optional[str],
        typer.Option("--namespace", "-n", help="Only clear this namespace (e.g. 'search')."),
    ] = None,
):
    """Clear cached API responses."""
    raise typer.Exit(code=_handler(ctx).handle_clear_cache(namespace))


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output and diagnostic events to stderr."),
    ] = False,
):
    """Loads configuration, configures logging and builds the dependencies."""
    load_configuration()
    log_level_name = "DEBUG" if verbose else str(get_config('logging.level', 'WARNING')).upper()
    setup_logging(
        log_level=getattr(logging, log_level_name, logging.WARNING),
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )

    try:
        settings = load_core_settings(verbose=True if verbose else None)
        configure_diagnostics(settings.verbose)
        dependencies = create_dependencies(settings)
    except HyperCliError as e:
        logger.error(f"Application initialization failed: {e.message}")
        ConsoleDisplay().display_error(e.message, suggestions=e.suggestions)
        raise typer.Exit(code=EXIT_USER_ERROR)

    ctx.obj = dependencies
    ctx.call_on_close(dependencies['response_cache'].close)


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
