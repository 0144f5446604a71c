"""Core settings, constants and errors."""
