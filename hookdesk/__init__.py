"""Session tracking and permission relay for coding CLI hooks."""

__version__ = "0.1.0"
