"""Parsers turning uploaded files into discovered items."""

from import_handler.adapters.parsers.matter_archive_parser import MatterArchiveParser, read_matter_history
from import_handler.adapters.parsers.url_list_parser import UrlListParser

__all__ = ["MatterArchiveParser", "UrlListParser", "read_matter_history"]
