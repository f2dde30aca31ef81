"""CareOS - billing package suggestions for remote care programs."""

__version__ = "0.1.0"
