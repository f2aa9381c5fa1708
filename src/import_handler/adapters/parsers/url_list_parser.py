"""Delimited link-list (URL_LIST CSV) parser."""

import csv
import io
from typing import BinaryIO, Iterable, Iterator, Union

from import_handler.adapters.parsers.csv_records import read_records
from import_handler.core import DiscoveredItem, ImportParser, ItemFailure, UrlItem
from import_handler.core.urls import parse_url


class UrlListParser(ImportParser):
    """Yield one URL per CSV record, in file order."""

    source = "csv-importer"

    HEADER_LABELS = {"url", "urls", "link", "href"}

    def __init__(self, url_column: int = 0) -> None:
        self.url_column = url_column

    def parse(self, stream: BinaryIO) -> Iterator[DiscoveredItem]:
        text = io.TextIOWrapper(stream, encoding="utf-8-sig", errors="replace", newline="")
        try:
            yield from self.parse_rows(read_records(csv.reader(text)))
        finally:
            # Leave the underlying stream to its owner
            text.detach()

    def parse_rows(self, rows: Iterable[Union[list[str], csv.Error]]) -> Iterator[DiscoveredItem]:
        """Turn CSV records into items; a bad record or URL field is a per-row failure."""
        first = True
        for line_no, row in enumerate(rows, 1):
            if isinstance(row, csv.Error):
                first = False
                print(f"  ⚠️  Unreadable record on line {line_no}: {row}")
                yield ItemFailure(reference=f"line {line_no}", reason=str(row))
                continue

            if not row or not any(field.strip() for field in row):
                continue

            value = row[self.url_column].strip() if len(row) > self.url_column else ""

            if first:
                first = False
                if value.lower() in self.HEADER_LABELS:
                    continue

            try:
                yield UrlItem(url=parse_url(value))
            except ValueError as e:
                print(f"  ⚠️  Invalid URL on line {line_no}: {e}")
                yield ItemFailure(reference=f"line {line_no}", reason=str(e))
