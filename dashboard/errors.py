"""
Error types raised by the edit-session engine.
"""


class DashboardError(Exception):
    """Base class for dashboard editing errors."""


class ValidationError(DashboardError, ValueError):
    """Rejected input (bad title, unknown widget kind). Nothing was mutated."""


class InvariantViolation(DashboardError):
    """Widgets and layout disagree: geometry without a widget or a widget without geometry."""
