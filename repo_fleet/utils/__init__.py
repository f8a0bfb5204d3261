"""Shared utilities: logging setup and async subprocess execution."""
