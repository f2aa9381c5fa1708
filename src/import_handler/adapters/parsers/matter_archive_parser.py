"""Matter archive bundle parser.

A Matter export is a zip holding ``_matter_history.csv`` (the manifest) and
one saved HTML document per article. Manifest rows point at their document
through the ``File Id`` column. Archive order is not guaranteed, so rows and
documents are correlated through a deferred index keyed by file name: a row
seen before its document waits for it, a document seen before its row is
remembered (as a zip member, not as bytes) until the row arrives.
"""

import csv
import io
import zipfile
import zlib
from datetime import datetime
from pathlib import PurePosixPath
from typing import BinaryIO, Iterator, Optional, TextIO, Union

from import_handler.adapters.parsers.csv_records import read_records
from import_handler.core import (
    ArchiveError,
    ContentExtractionError,
    ContentExtractor,
    ContentItem,
    DiscoveredItem,
    ImportParser,
    ItemFailure,
    ManifestEntry,
    UrlItem,
)
from import_handler.core.urls import parse_url

MANIFEST_NAME = "_matter_history.csv"
CONTENT_SUFFIXES = (".html", ".htm")

# Errors zipfile raises for damaged or unsupported members
_ARCHIVE_ERRORS = (zipfile.BadZipFile, zipfile.LargeZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError)


def parse_saved_at(value: str) -> Optional[datetime]:
    value = (value or "").strip()
    if not value:
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%m/%d/%Y %H:%M:%S", "%m/%d/%Y"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def read_matter_history(stream: TextIO) -> Iterator[Union[ManifestEntry, ItemFailure]]:
    """Read manifest rows, yielding a failure for rows without a usable URL."""
    reader = csv.DictReader(stream)
    for row_no, row in enumerate(read_records(reader), 2):
        if isinstance(row, csv.Error):
            yield ItemFailure(reference=f"{MANIFEST_NAME} row {row_no}", reason=str(row))
            continue

        raw_url = (row.get("URL") or "").strip()
        try:
            url = parse_url(raw_url)
        except ValueError as e:
            yield ItemFailure(reference=f"{MANIFEST_NAME} row {row_no}", reason=str(e))
            continue

        file_id = (row.get("File Id") or "").strip() or None
        yield ManifestEntry(
            url=url,
            title=(row.get("Title") or "").strip(),
            saved_at=parse_saved_at(row.get("Last Interaction Date") or ""),
            file_id=file_id,
        )


def _entry_kind(info: zipfile.ZipInfo) -> Optional[str]:
    if info.is_dir():
        return None
    path = PurePosixPath(info.filename)
    if path.parts and path.parts[0] == "__MACOSX":
        return None
    if path.name == MANIFEST_NAME:
        return "manifest"
    if path.suffix.lower() in CONTENT_SUFFIXES:
        return "content"
    return None


def _content_keys(file_name: str) -> tuple[str, str]:
    """Keys a document can be referenced by: its name with and without suffix."""
    path = PurePosixPath(file_name)
    return path.name, path.stem


class MatterArchiveParser(ImportParser):
    """Yield URL and full-content items from a Matter export zip."""

    source = "matter-importer"

    def __init__(self, extractor: ContentExtractor, encoding: str = "utf-8") -> None:
        self.extractor = extractor
        self.encoding = encoding

    def parse(self, stream: BinaryIO) -> Iterator[DiscoveredItem]:
        """Walk the archive and yield items as rows and documents pair up.

        Raises:
            ArchiveError: the container (or one of its members) is corrupt.
                Items resolved before the fault have already been yielded.
        """
        try:
            archive = zipfile.ZipFile(stream)
        except _ARCHIVE_ERRORS as e:
            raise ArchiveError(f"Unreadable archive: {e}") from e

        with archive:
            # key -> content members with that key, in archive order
            documents: dict[str, list[zipfile.ZipInfo]] = {}
            # every content member, in archive order
            contents: list[zipfile.ZipInfo] = []
            # key -> manifest rows waiting for their document
            waiting: dict[str, list[ManifestEntry]] = {}
            claimed: set[zipfile.ZipInfo] = set()

            for info in archive.infolist():
                kind = _entry_kind(info)

                if kind == "manifest":
                    for entry in self._read_manifest(archive, info):
                        if isinstance(entry, ItemFailure):
                            yield entry
                        elif not entry.file_id:
                            yield UrlItem(url=entry.url)
                        else:
                            key = PurePosixPath(entry.file_id).name
                            members = documents.get(key)
                            if not members:
                                waiting.setdefault(key, []).append(entry)
                            else:
                                # A File Id names the first document with that name
                                claimed.add(members[0])
                                yield self._resolve(archive, members[0], entry)

                elif kind == "content":
                    contents.append(info)
                    for key in _content_keys(info.filename):
                        members = documents.setdefault(key, [])
                        members.append(info)
                        if members[0] is not info:
                            continue
                        for entry in waiting.pop(key, []):
                            claimed.add(info)
                            yield self._resolve(archive, info, entry)

            for key, entries in waiting.items():
                for entry in entries:
                    print(f"  ⚠️  Missing content file {key} for {entry.url}")
                    yield ItemFailure(reference=entry.url, reason=f"missing content file {key}")

            for info in contents:
                if info not in claimed:
                    print(f"  ⚠️  No manifest entry for {info.filename}")
                    yield ItemFailure(reference=info.filename, reason="no manifest entry")

    def _read_manifest(
        self, archive: zipfile.ZipFile, info: zipfile.ZipInfo
    ) -> list[Union[ManifestEntry, ItemFailure]]:
        data = self._read_member(archive, info)
        text = io.StringIO(data.decode("utf-8-sig", errors="replace"), newline="")
        return list(read_matter_history(text))

    def _read_member(self, archive: zipfile.ZipFile, info: zipfile.ZipInfo) -> bytes:
        try:
            return archive.read(info)
        except _ARCHIVE_ERRORS as e:
            raise ArchiveError(f"Corrupt archive entry {info.filename}: {e}") from e

    def _resolve(
        self, archive: zipfile.ZipFile, info: zipfile.ZipInfo, entry: ManifestEntry
    ) -> DiscoveredItem:
        raw = self._read_member(archive, info).decode(self.encoding, errors="replace")
        try:
            article = self.extractor.extract(raw, entry.url)
        except ContentExtractionError as e:
            print(f"  ⚠️  Could not extract {info.filename}: {e}")
            return ItemFailure(reference=entry.url, reason=str(e))

        return ContentItem(
            url=entry.url,
            title=entry.title or article.title,
            raw_content=raw,
            parsed_content=article,
        )
