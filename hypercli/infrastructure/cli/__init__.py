"""Rich-based console presentation."""
