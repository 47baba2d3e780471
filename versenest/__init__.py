"""VerseNest authentication and session-security service."""

__version__ = "0.1.0"
