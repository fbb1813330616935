"""Fixy backend: plan-gated, credit-metered AI replies in shared chatrooms."""

__version__ = "0.1.0"
