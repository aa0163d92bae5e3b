"""Shared models, protocols, constants, and utilities for the quality gate.

This package is the foundational layer for ``quality_gate`` (evaluation)
and ``gate_runner`` (configuration and command line).
"""

__version__ = "1.0.0"
