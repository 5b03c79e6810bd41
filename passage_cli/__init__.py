"""Command line helpers registered under ``flask manage``."""
