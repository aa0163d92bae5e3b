"""Configuration, display, and command line for the quality gate."""

__version__ = "1.0.0"
