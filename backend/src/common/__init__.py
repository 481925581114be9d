"""Shared helpers and exception types."""
