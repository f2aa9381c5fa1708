"""Core domain layer."""

from import_handler.core.entities import (
    ContentItem,
    DiscoveredItem,
    ImportContext,
    ImportReport,
    ImportState,
    ItemFailure,
    ManifestEntry,
    ParsedArticle,
    ParserKind,
    StorageEvent,
    UrlItem,
)
from import_handler.core.errors import (
    ArchiveError,
    ConfigurationError,
    ContentExtractionError,
    ImportHandlerError,
    InvalidTransitionError,
    StorageError,
    TaskQueueError,
)
from import_handler.core.interfaces import (
    ContentExtractor,
    ImportParser,
    NotificationService,
    ObjectStorage,
    TaskQueue,
)

__all__ = [
    "ContentItem",
    "DiscoveredItem",
    "ImportContext",
    "ImportReport",
    "ImportState",
    "ItemFailure",
    "ManifestEntry",
    "ParsedArticle",
    "ParserKind",
    "StorageEvent",
    "UrlItem",
    "ArchiveError",
    "ConfigurationError",
    "ContentExtractionError",
    "ImportHandlerError",
    "InvalidTransitionError",
    "StorageError",
    "TaskQueueError",
    "ContentExtractor",
    "ImportParser",
    "NotificationService",
    "ObjectStorage",
    "TaskQueue",
]
