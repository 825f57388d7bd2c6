"""Shared utilities (logging, configuration loading)."""
