"""Core interfaces for adapters."""

from abc import ABC, abstractmethod
from typing import BinaryIO, Iterator, Optional

from import_handler.core.entities import DiscoveredItem, ParsedArticle


class ImportParser(ABC):
    """Interface for turning an uploaded file into discovered items."""

    source: str = "importer"

    @abstractmethod
    def parse(self, stream: BinaryIO) -> Iterator[DiscoveredItem]:
        """Lazily yield items found in the stream (single pass)."""
        pass


class ContentExtractor(ABC):
    """Interface for extracting readable articles from saved documents."""

    @abstractmethod
    def extract(self, html: str, url: str) -> ParsedArticle:
        """Extract an article, raising ContentExtractionError on failure."""
        pass


class ObjectStorage(ABC):
    """Interface for reading uploaded objects."""

    @abstractmethod
    async def open(self, bucket: str, name: str) -> BinaryIO:
        """Open an object for reading from the start."""
        pass


class TaskQueue(ABC):
    """Interface for enqueueing downstream HTTP tasks."""

    @abstractmethod
    async def enqueue(
        self, url: str, payload: dict, headers: Optional[dict[str, str]] = None
    ) -> Optional[str]:
        """Enqueue a task and return its identifier."""
        pass


class NotificationService(ABC):
    """Interface for the terminal import notification."""

    @abstractmethod
    async def send_import_failed(self, user_id: str) -> Optional[str]:
        """Tell the user their import failed."""
        pass

    @abstractmethod
    async def send_import_completed(
        self, user_id: str, imported: int, failed: int
    ) -> Optional[str]:
        """Tell the user their import finished with the given counts."""
        pass
