"""E-Vote backend: email-verified accounts, elections and single-ballot voting."""

__version__ = "1.0.0"
