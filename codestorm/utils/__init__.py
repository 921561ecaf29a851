"""Shared utilities: ids, extraction, reconciliation, palettes and error handling."""
