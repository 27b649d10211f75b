"""studydeck - streaming study presentation generator."""

__version__ = "0.1.0"
