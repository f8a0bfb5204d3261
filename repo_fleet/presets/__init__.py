"""Embedded workflow plan presets, loaded with importlib.resources."""
