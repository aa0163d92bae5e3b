"""Quality gate engine.

Provides 6-layer quality verification over a set of changed files:
syntax, lint, static analysis, vulnerability scan, security review, and
optimization/standards, followed by a static pass/blocked decision.
"""

__version__ = "1.0.0"
