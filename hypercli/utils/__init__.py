"""Pure helpers for id parsing and alias generation."""
