"""Pure value helpers."""
