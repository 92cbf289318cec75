"""Daily weather collection pipeline for the property center."""

__version__ = "0.1.0"
