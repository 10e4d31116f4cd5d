"""Shared utilities: logging, metrics, validation and random sources."""
