"""Discord interaction dispatch and command registration core."""

__version__ = "0.4.0"
