"""Import downloaded video assets into a content-addressed storage network."""

__version__ = "0.1.0"
