"""Shared helpers for importer."""
