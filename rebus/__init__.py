"""Daily rebus puzzle batch generator."""

__version__ = "0.1.0"
