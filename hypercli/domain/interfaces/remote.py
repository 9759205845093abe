"""Interface for the remote lookup capability.

The core never performs transport I/O itself; a transport adapter implements
this contract and is injected at the composition root.
"""

import abc
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from hypercli.domain.models.resource import RemoteResource, ResourcePage

T = TypeVar("T")

# A zero-argument factory producing the awaitable for one attempt of a remote call.
RemoteOperation = Callable[[], Awaitable[T]]


class RemoteGateway(abc.ABC):
    """Abstract Base Class for searching and listing remote resources."""

    @abc.abstractmethod
    async def search(self, query: str) -> List[RemoteResource]:
        """Searches remote resources by free text.

        Args:
            query: The user's search text.

        Returns:
            Candidate resources, best match first. Empty if nothing matched.
        """
        pass

    @abc.abstractmethod
    async def list_resources(self, cursor: Optional[str] = None) -> ResourcePage:
        """Lists all resources visible to the client, one page at a time.

        Args:
            cursor: Opaque cursor returned by the previous page, None for the first.
        """
        pass


def load_gateway_factory(factory_ref: str) -> Callable[..., Any]:
    """Imports a ``'package.module:callable'`` factory for a RemoteGateway."""
    import importlib

    module_name, _, attr = factory_ref.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Remote factory must look like 'module:callable', got '{factory_ref}'")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    if not callable(factory):
        raise ValueError(f"Remote factory '{factory_ref}' is not callable")
    return factory
