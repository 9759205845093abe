"""Application Services (resolution, sync, cached fetching)."""
