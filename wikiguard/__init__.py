"""IP reputation tooling for community moderation."""

__version__ = "0.1.0"
