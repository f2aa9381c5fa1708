"""Core domain entities."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Union


class ParserKind(str, Enum):
    """Kind of uploaded import file."""

    MATTER_ARCHIVE = "matter_archive"
    URL_LIST = "url_list"


class ImportState(str, Enum):
    """Lifecycle state of one import run."""

    IDLE = "idle"
    CLASSIFIED = "classified"
    PARSING = "parsing"
    AGGREGATING = "aggregating"
    NOTIFIED = "notified"


@dataclass
class StorageEvent:
    """Object-storage write notification."""

    name: str
    bucket: str
    content_type: str


@dataclass
class ParsedArticle:
    """Readable article extracted from a saved document."""

    title: str
    content: str
    text_content: str
    excerpt: str = ""
    byline: Optional[str] = None
    site_name: Optional[str] = None
    length: int = 0


@dataclass
class ManifestEntry:
    """Row of an archive manifest pointing at a saved URL."""

    url: str
    title: str = ""
    saved_at: Optional[datetime] = None
    file_id: Optional[str] = None


@dataclass(frozen=True)
class UrlItem:
    """Item that only carries a URL to fetch."""

    url: str


@dataclass(frozen=True)
class ContentItem:
    """Item with full saved content that needs no re-fetch."""

    url: str
    title: str
    raw_content: str
    parsed_content: ParsedArticle


@dataclass(frozen=True)
class ItemFailure:
    """Item a parser found but could not turn into work."""

    reference: str
    reason: str


DiscoveredItem = Union[UrlItem, ContentItem, ItemFailure]

UrlHandler = Callable[["ImportContext", str], Awaitable[Optional[str]]]
ContentHandler = Callable[
    ["ImportContext", str, str, str, ParsedArticle], Awaitable[Optional[str]]
]


@dataclass
class ImportContext:
    """State shared by every dispatch of one import run."""

    user_id: str
    url_handler: UrlHandler
    content_handler: ContentHandler
    source: str = "csv-importer"
    imported: int = 0
    failed: int = 0

    def __post_init__(self) -> None:
        if not self.user_id:
            raise ValueError("User id cannot be empty")

    @property
    def processed(self) -> int:
        return self.imported + self.failed

    def record_imported(self) -> None:
        self.imported += 1

    def record_failed(self) -> None:
        self.failed += 1


@dataclass
class ImportReport:
    """Outcome of one import run."""

    user_id: str
    file_name: str
    kind: ParserKind
    imported: int = 0
    failed: int = 0
    state: ImportState = ImportState.IDLE
    notification: Optional[str] = None
    notification_error: Optional[str] = None
    fatal_error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)

    @property
    def succeeded(self) -> bool:
        return self.notification == "completed"
