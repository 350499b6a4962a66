"""Terminal dashboard for monitoring PostgreSQL."""

__version__ = "0.1.0"
