"""Domain layer: models, events, errors and interfaces. No infrastructure imports."""
