"""PocketDr: health assistant chat completion service."""

__version__ = "0.1.0"
