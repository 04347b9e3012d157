"""Round-trip train search with bicycle-carriage details."""

__version__ = "0.1.0"
