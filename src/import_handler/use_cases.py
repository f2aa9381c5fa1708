"""Business logic use cases."""

import asyncio
from typing import Awaitable, BinaryIO, Callable, Iterable, Optional

from import_handler.config import ImportsConfig
from import_handler.core import (
    ConfigurationError,
    ContentItem,
    DiscoveredItem,
    ImportContext,
    ImportParser,
    ImportReport,
    ImportState,
    InvalidTransitionError,
    ItemFailure,
    NotificationService,
    ObjectStorage,
    ParserKind,
    StorageEvent,
    TaskQueueError,
)
from import_handler.core.classifier import classify, extract_user_id, should_handle
from import_handler.core.entities import ContentHandler, UrlHandler

# Imports with at most this many items imported are reported as failed
FAILURE_THRESHOLD = 1

# End-of-input marker for items pulled from a parser
_DONE = object()

_NEXT_STATE = {
    ImportState.IDLE: ImportState.CLASSIFIED,
    ImportState.CLASSIFIED: ImportState.PARSING,
    ImportState.PARSING: ImportState.AGGREGATING,
    ImportState.AGGREGATING: ImportState.NOTIFIED,
}


class ImportRun:
    """One pass of a file through the pipeline, moving strictly forward."""

    def __init__(self, report: ImportReport) -> None:
        self.report = report

    @property
    def state(self) -> ImportState:
        return self.report.state

    def advance(self, state: ImportState) -> None:
        expected = _NEXT_STATE.get(self.report.state)
        if state != expected:
            raise InvalidTransitionError(
                f"Cannot move import from {self.report.state.value} to {state.value}"
            )
        self.report.state = state


class ImportService:
    """Service driving uploaded files from trigger to terminal notification."""

    def __init__(
        self,
        parsers: dict[ParserKind, ImportParser],
        url_handler: UrlHandler,
        content_handler: ContentHandler,
        notification_service: NotificationService,
        storage: Optional[ObjectStorage] = None,
        imports_config: Optional[ImportsConfig] = None,
        max_concurrent_dispatches: int = 10,
    ) -> None:
        self.parsers = parsers
        self.url_handler = url_handler
        self.content_handler = content_handler
        self.notification_service = notification_service
        self.storage = storage
        self.imports_config = imports_config or ImportsConfig()
        self.max_concurrent_dispatches = max(1, max_concurrent_dispatches)

    def classify(self, file_name: str) -> Optional[ParserKind]:
        kind = classify(
            file_name,
            archive_prefix=self.imports_config.archive_prefix,
            list_prefix=self.imports_config.list_prefix,
        )
        if kind is not None and kind not in self.parsers:
            return None
        return kind

    async def handle_event(self, event: StorageEvent) -> Optional[ImportReport]:
        """Process a storage write event.

        Returns:
            The run report, or None when the event is not an import upload.
        """
        content_types = tuple(t.lower() for t in self.imports_config.content_types)
        if not should_handle(event, self.imports_config.path_prefix, content_types):
            return None

        kind = self.classify(event.name)
        if kind is None:
            print(f"No handler for file: {event.name}")
            return None

        user_id = extract_user_id(event.name, self.imports_config.path_prefix)
        if not user_id:
            print(f"Could not extract user id from file name: {event.name}")
            return None

        if self.storage is None:
            raise ConfigurationError("No object storage configured for event handling")

        storage = self.storage
        run = ImportRun(ImportReport(user_id=user_id, file_name=event.name, kind=kind))
        run.advance(ImportState.CLASSIFIED)
        return await self._execute(run, lambda: storage.open(event.bucket, event.name))

    async def run_import(
        self, user_id: str, file_name: str, kind: ParserKind, stream: BinaryIO
    ) -> ImportReport:
        """Run an already-classified file for a user."""
        if not user_id:
            raise ValueError("User id cannot be empty")
        if kind not in self.parsers:
            raise ValueError(f"No parser registered for {kind.value}")

        async def opener() -> BinaryIO:
            return stream

        run = ImportRun(ImportReport(user_id=user_id, file_name=file_name, kind=kind))
        run.advance(ImportState.CLASSIFIED)
        return await self._execute(run, opener)

    async def _execute(
        self, run: ImportRun, open_stream: Callable[[], Awaitable[BinaryIO]]
    ) -> ImportReport:
        report = run.report
        parser = self.parsers[report.kind]
        ctx = ImportContext(
            user_id=report.user_id,
            url_handler=self.url_handler,
            content_handler=self.content_handler,
            source=parser.source,
        )

        run.advance(ImportState.PARSING)
        print(f"\n📥 Importing {report.file_name} for user {report.user_id} ({report.kind.value})")

        try:
            stream = await open_stream()
            try:
                await self._dispatch_all(ctx, parser.parse(stream))
            finally:
                stream.close()
        except ConfigurationError:
            raise
        except Exception as e:
            # Fatal for the run; counters keep what was settled before the fault
            report.fatal_error = f"{type(e).__name__}: {e}"
            print(f"❌ Import of {report.file_name} aborted: {report.fatal_error}")

        run.advance(ImportState.AGGREGATING)
        report.imported = ctx.imported
        report.failed = ctx.failed
        print(f"✓ Imported: {ctx.imported}, failed: {ctx.failed}")

        await self._notify(run)
        return report

    async def _dispatch_all(self, ctx: ImportContext, items: Iterable[DiscoveredItem]) -> None:
        """Dispatch every item; returns only once all dispatches have settled.

        Items are pulled from the parser in a worker thread, so decompression
        and content extraction do not hold up dispatches already in flight.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_dispatches)
        pending: set[asyncio.Task] = set()
        iterator = iter(items)

        try:
            while True:
                item = await asyncio.to_thread(next, iterator, _DONE)
                if item is _DONE:
                    break

                if isinstance(item, ItemFailure):
                    print(f"  ⚠️  Skipped {item.reference}: {item.reason}")
                    ctx.record_failed()
                    continue

                await semaphore.acquire()
                task = asyncio.create_task(self._dispatch(ctx, item, semaphore))
                pending.add(task)
                task.add_done_callback(pending.discard)
        finally:
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _dispatch(
        self, ctx: ImportContext, item: DiscoveredItem, semaphore: asyncio.Semaphore
    ) -> None:
        try:
            if isinstance(item, ContentItem):
                result = await ctx.content_handler(
                    ctx, item.url, item.title, item.raw_content, item.parsed_content
                )
            else:
                result = await ctx.url_handler(ctx, item.url)
        except Exception as e:
            print(f"  ⚠️  Error importing {item.url}: {e}")
            ctx.record_failed()
        else:
            if result:
                ctx.record_imported()
            else:
                print(f"  ⚠️  No task created for {item.url}")
                ctx.record_failed()
        finally:
            semaphore.release()

    async def _notify(self, run: ImportRun) -> None:
        report = run.report
        try:
            if report.imported <= FAILURE_THRESHOLD:
                report.notification = "failed"
                await self.notification_service.send_import_failed(report.user_id)
            else:
                report.notification = "completed"
                await self.notification_service.send_import_completed(
                    report.user_id, report.imported, report.failed
                )
        except TaskQueueError as e:
            report.notification_error = str(e)
            print(f"⚠️  Could not queue import email for {report.user_id}: {e}")

        run.advance(ImportState.NOTIFIED)
