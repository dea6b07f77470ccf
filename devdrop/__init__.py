"""devdrop: personal container development environments."""

__version__ = "0.3.0"
