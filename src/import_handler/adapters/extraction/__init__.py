"""Content extraction adapters."""

from import_handler.adapters.extraction.html_extractor import HtmlArticleExtractor

__all__ = ["HtmlArticleExtractor"]
