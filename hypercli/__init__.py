"""hypercli: reference resolution, caching and resilient remote calls for a hypermedia API CLI."""

__version__ = "0.1.0"
