"""Readable-article extraction from saved HTML documents."""

import json
from html import escape
from typing import Any, Optional

import trafilatura

from import_handler.core import ContentExtractionError, ContentExtractor, ParsedArticle


class HtmlArticleExtractor(ContentExtractor):
    """Extract title, metadata and readable body from a saved page with trafilatura."""

    def __init__(
        self,
        min_text_length: int = 1,
        excerpt_length: int = 200,
        include_tables: bool = False,
    ) -> None:
        self.min_text_length = min_text_length
        self.excerpt_length = excerpt_length
        self.include_tables = include_tables

    def extract(self, html: str, url: str) -> ParsedArticle:
        """Extract an article from raw HTML.

        Args:
            html: Saved document
            url: Source URL, passed to trafilatura for metadata

        Raises:
            ContentExtractionError: if the document has no readable text.
        """
        if not html or not html.strip():
            raise ContentExtractionError(f"Empty document for {url}")

        try:
            result = self._run(html, url, "json", with_metadata=True)
            body = self._run(html, url, "html") if result else None
        except Exception as e:
            raise ContentExtractionError(f"Extraction failed for {url}: {e}") from e

        if not result:
            raise ContentExtractionError(f"No readable text for {url}")

        data: dict[str, Any] = json.loads(result)
        text = (data.get("text") or data.get("raw_text") or "").strip()
        if len(text) < self.min_text_length:
            raise ContentExtractionError(f"No readable text for {url}")

        return ParsedArticle(
            title=_clean(data.get("title")) or "",
            content=body or _paragraphs(text),
            text_content=text,
            excerpt=_clean(data.get("excerpt")) or text[: self.excerpt_length],
            byline=_clean(data.get("author")),
            site_name=_clean(data.get("source-hostname")),
            length=len(text),
        )

    def _run(self, html: str, url: str, output_format: str, with_metadata: bool = False) -> Optional[str]:
        return trafilatura.extract(
            html,
            url=url,
            output_format=output_format,
            with_metadata=with_metadata,
            include_comments=False,
            include_tables=self.include_tables,
        )


def _clean(value: Any) -> Optional[str]:
    if not value:
        return None
    return str(value).strip() or None


def _paragraphs(text: str) -> str:
    return "".join(f"<p>{escape(line)}</p>" for line in text.splitlines() if line.strip())
