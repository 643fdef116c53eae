"""Client-resident voice authentication."""

__version__ = "1.0.0"
