"""Import pipeline for bulk link-list and archive uploads."""

__version__ = "0.1.0"
