"""zamm: hierarchical documentation node store."""

__version__ = "0.1.0"
