"""Public-registry collection pipeline with homepage email extraction."""

__version__ = "0.1.0"
