"""Tests for use cases."""

import asyncio
import io
import threading
import zipfile
from typing import BinaryIO, Iterator
from unittest.mock import AsyncMock

import pytest

from import_handler.adapters.extraction import HtmlArticleExtractor
from import_handler.adapters.parsers import MatterArchiveParser, UrlListParser
from import_handler.config import ImportsConfig
from import_handler.core import (
    ArchiveError,
    ConfigurationError,
    ContentExtractionError,
    ContentExtractor,
    ContentItem,
    DiscoveredItem,
    ImportParser,
    ImportReport,
    ImportState,
    InvalidTransitionError,
    ItemFailure,
    ParsedArticle,
    ParserKind,
    StorageError,
    StorageEvent,
    TaskQueueError,
    UrlItem,
)
from import_handler.use_cases import ImportRun, ImportService


class ListParser(ImportParser):
    """Parser replaying fixed items, optionally failing after some of them."""

    source = "test-importer"

    def __init__(self, items: list[DiscoveredItem], fail_after: int | None = None) -> None:
        self.items = items
        self.fail_after = fail_after

    def parse(self, stream: BinaryIO) -> Iterator[DiscoveredItem]:
        for i, item in enumerate(self.items):
            if self.fail_after is not None and i == self.fail_after:
                raise ArchiveError("unexpected end of archive")
            yield item


def _urls(n: int) -> list[DiscoveredItem]:
    return [UrlItem(url=f"https://example.com/{i}") for i in range(n)]


def _service(
    parser: ImportParser | None = None,
    url_handler: AsyncMock | None = None,
    content_handler: AsyncMock | None = None,
    notifier: AsyncMock | None = None,
    storage: AsyncMock | None = None,
    max_concurrent_dispatches: int = 10,
) -> ImportService:
    parser = parser or UrlListParser()
    return ImportService(
        parsers={ParserKind.URL_LIST: parser, ParserKind.MATTER_ARCHIVE: parser},
        url_handler=url_handler or AsyncMock(return_value="task"),
        content_handler=content_handler or AsyncMock(return_value="task"),
        notification_service=notifier or AsyncMock(),
        storage=storage,
        max_concurrent_dispatches=max_concurrent_dispatches,
    )


def _storage(data: bytes) -> AsyncMock:
    storage = AsyncMock()
    storage.open.return_value = io.BytesIO(data)
    return storage


@pytest.mark.asyncio
async def test_csv_import_counts_and_completion_email() -> None:
    """Test two good rows and one bad row give a completion email."""
    url_handler = AsyncMock(return_value="task")
    notifier = AsyncMock()
    service = _service(url_handler=url_handler, notifier=notifier)
    data = b"https://example.com/1\nhttps://example.com/2\nnot-a-url\n"

    report = await service.run_import("user-1", "URL_LIST-1.csv", ParserKind.URL_LIST, io.BytesIO(data))

    assert (report.imported, report.failed) == (2, 1)
    assert report.state == ImportState.NOTIFIED
    assert report.notification == "completed"
    assert [call.args[1] for call in url_handler.call_args_list] == [
        "https://example.com/1",
        "https://example.com/2",
    ]
    ctx = url_handler.call_args.args[0]
    assert ctx.user_id == "user-1"
    assert ctx.source == "csv-importer"
    notifier.send_import_completed.assert_called_once_with("user-1", 2, 1)
    notifier.send_import_failed.assert_not_called()


@pytest.mark.asyncio
async def test_archive_extraction_failure_sends_failed_email() -> None:
    """Test an archive whose only document cannot be extracted."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr(
            "_matter_history.csv",
            "Title,URL,Last Interaction Date,File Id\nStory,https://example.com/s,,1.html\n",
        )
        archive.writestr("1.html", "<html><head><script>x()</script></head></html>")
    buffer.seek(0)

    content_handler = AsyncMock(return_value="task")
    notifier = AsyncMock()
    service = _service(
        parser=MatterArchiveParser(HtmlArticleExtractor()),
        content_handler=content_handler,
        notifier=notifier,
    )

    report = await service.run_import("user-1", "MATTER.zip", ParserKind.MATTER_ARCHIVE, buffer)

    assert (report.imported, report.failed) == (0, 1)
    content_handler.assert_not_called()
    notifier.send_import_failed.assert_called_once_with("user-1")
    notifier.send_import_completed.assert_not_called()


@pytest.mark.asyncio
async def test_content_items_use_content_handler() -> None:
    """Test full-content items go to the content handler."""
    article = ParsedArticle(title="T", content="<p>x</p>", text_content="x")
    items = [
        ContentItem(url="https://example.com/a", title="A", raw_content="<p>x</p>", parsed_content=article),
        UrlItem(url="https://example.com/b"),
        ContentItem(url="https://example.com/c", title="C", raw_content="<p>x</p>", parsed_content=article),
    ]
    url_handler = AsyncMock(return_value="task")
    content_handler = AsyncMock(return_value="task")
    service = _service(parser=ListParser(items), url_handler=url_handler, content_handler=content_handler)

    report = await service.run_import("user-1", "MATTER.zip", ParserKind.MATTER_ARCHIVE, io.BytesIO())

    assert report.imported == 3
    assert content_handler.call_count == 2
    _, url, title, raw, parsed = content_handler.call_args_list[0].args
    assert (url, title, raw, parsed) == ("https://example.com/a", "A", "<p>x</p>", article)
    url_handler.assert_called_once()


@pytest.mark.asyncio
async def test_image_upload_ignored() -> None:
    """Test uploads with an unaccepted content type are ignored."""
    url_handler = AsyncMock()
    notifier = AsyncMock()
    storage = _storage(b"")
    service = _service(url_handler=url_handler, notifier=notifier, storage=storage)

    report = await service.handle_event(StorageEvent("imports/u1/URL_LIST.csv", "b", "image/png"))

    assert report is None
    storage.open.assert_not_called()
    url_handler.assert_not_called()
    assert notifier.method_calls == []


@pytest.mark.asyncio
async def test_upload_outside_imports_ignored() -> None:
    """Test uploads without the imports/ prefix are ignored."""
    notifier = AsyncMock()
    storage = _storage(b"https://example.com/\n")
    service = _service(notifier=notifier, storage=storage)

    report = await service.handle_event(StorageEvent("uploads/u1/URL_LIST.csv", "b", "text/csv"))

    assert report is None
    storage.open.assert_not_called()
    assert notifier.method_calls == []


@pytest.mark.asyncio
async def test_unclassified_or_anonymous_upload_ignored() -> None:
    """Test unknown file names and paths without a user id are ignored."""
    notifier = AsyncMock()
    storage = _storage(b"")
    service = _service(notifier=notifier, storage=storage)

    assert await service.handle_event(StorageEvent("imports/u1/pocket.csv", "b", "text/csv")) is None
    assert await service.handle_event(StorageEvent("imports/URL_LIST.csv", "b", "text/csv")) is None
    storage.open.assert_not_called()
    assert notifier.method_calls == []


@pytest.mark.asyncio
async def test_handle_event_runs_import() -> None:
    """Test an accepted event is read from storage and imported."""
    notifier = AsyncMock()
    storage = _storage(b"https://example.com/1\nhttps://example.com/2\nhttps://example.com/3\n")
    service = _service(notifier=notifier, storage=storage)

    report = await service.handle_event(
        StorageEvent("imports/user-9/URL_LIST-abc.csv", "uploads", "text/csv")
    )

    assert isinstance(report, ImportReport)
    assert report.user_id == "user-9"
    assert report.kind == ParserKind.URL_LIST
    assert report.imported == 3
    storage.open.assert_called_once_with("uploads", "imports/user-9/URL_LIST-abc.csv")
    notifier.send_import_completed.assert_called_once_with("user-9", 3, 0)


@pytest.mark.asyncio
async def test_storage_error_is_fatal_and_notifies() -> None:
    """Test unreadable uploads still end with exactly one email."""
    notifier = AsyncMock()
    storage = AsyncMock()
    storage.open.side_effect = StorageError("403 Forbidden")
    service = _service(notifier=notifier, storage=storage)

    report = await service.handle_event(StorageEvent("imports/u1/URL_LIST.csv", "b", "text/csv"))

    assert report.fatal_error == "StorageError: 403 Forbidden"
    assert (report.imported, report.failed) == (0, 0)
    notifier.send_import_failed.assert_called_once_with("u1")


@pytest.mark.asyncio
async def test_fault_mid_parse_keeps_partial_counts() -> None:
    """Test a parser fault after two of five items keeps those two."""
    url_handler = AsyncMock(return_value="task")
    notifier = AsyncMock()
    service = _service(parser=ListParser(_urls(5), fail_after=2), url_handler=url_handler, notifier=notifier)

    report = await service.run_import("user-1", "MATTER.zip", ParserKind.MATTER_ARCHIVE, io.BytesIO())

    assert (report.imported, report.failed) == (2, 0)
    assert report.fatal_error.startswith("ArchiveError")
    assert report.state == ImportState.NOTIFIED
    assert url_handler.call_count == 2
    notifier.send_import_completed.assert_called_once_with("user-1", 2, 0)
    notifier.send_import_failed.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "imported,failed,expected",
    [(0, 0, "failed"), (1, 0, "failed"), (1, 10, "failed"), (2, 0, "completed"), (2, 10, "completed")],
)
async def test_threshold(imported: int, failed: int, expected: str) -> None:
    """Test the failed email is sent iff at most one item was imported."""
    items = _urls(imported) + [ItemFailure(reference=str(i), reason="bad") for i in range(failed)]
    notifier = AsyncMock()
    service = _service(parser=ListParser(items), notifier=notifier)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert report.notification == expected
    total_calls = notifier.send_import_failed.call_count + notifier.send_import_completed.call_count
    assert total_calls == 1
    if expected == "failed":
        notifier.send_import_failed.assert_called_once_with("user-1")
    else:
        notifier.send_import_completed.assert_called_once_with("user-1", imported, failed)


@pytest.mark.asyncio
async def test_handler_errors_and_empty_results_count_as_failed() -> None:
    """Test per-item dispatch failures do not stop the run."""
    url_handler = AsyncMock(side_effect=["task", RuntimeError("queue down"), None, "task", "task"])
    service = _service(parser=ListParser(_urls(5)), url_handler=url_handler)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert (report.imported, report.failed) == (3, 2)
    assert report.fatal_error is None
    assert url_handler.call_count == 5


@pytest.mark.asyncio
async def test_notification_waits_for_all_dispatches() -> None:
    """Test counters are read only after every dispatch settles."""
    settled: list[str] = []

    async def slow_handler(ctx, url: str) -> str:
        # Later items finish first
        await asyncio.sleep(0.01 * (5 - int(url.rsplit("/", 1)[1])))
        settled.append(url)
        return "task"

    notifier = AsyncMock()

    async def check_completed(user_id: str, imported: int, failed: int) -> None:
        assert len(settled) == 5
        assert imported == 5

    notifier.send_import_completed.side_effect = check_completed
    service = _service(parser=ListParser(_urls(5)), url_handler=slow_handler, notifier=notifier)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert report.imported == 5
    notifier.send_import_completed.assert_awaited_once()


@pytest.mark.asyncio
async def test_dispatch_concurrency_is_bounded() -> None:
    """Test no more than the configured number of dispatches run at once."""
    running = 0
    peak = 0

    async def handler(ctx, url: str) -> str:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return "task"

    service = _service(parser=ListParser(_urls(10)), url_handler=handler, max_concurrent_dispatches=3)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert report.imported == 10
    assert 1 < peak <= 3


@pytest.mark.asyncio
async def test_rerun_gives_same_totals() -> None:
    """Test the same file imported twice yields the same counts."""
    data = b"https://example.com/1\nbad\nhttps://example.com/2\nhttps://example.com/3\n"
    service = _service()

    first = await service.run_import("u", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO(data))
    second = await service.run_import("u", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO(data))

    assert (first.imported, first.failed) == (second.imported, second.failed) == (3, 1)


@pytest.mark.asyncio
async def test_configuration_error_propagates() -> None:
    """Test a missing signing secret escapes the run."""
    notifier = AsyncMock()
    notifier.send_import_completed.side_effect = ConfigurationError("JWT_SECRET is missing")
    service = _service(parser=ListParser(_urls(3)), notifier=notifier)

    with pytest.raises(ConfigurationError):
        await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())


@pytest.mark.asyncio
async def test_notification_queue_error_is_reported() -> None:
    """Test a failed email enqueue is recorded, not retried."""
    notifier = AsyncMock()
    notifier.send_import_failed.side_effect = TaskQueueError("queue down")
    service = _service(parser=ListParser([]), notifier=notifier)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert report.state == ImportState.NOTIFIED
    assert report.notification == "failed"
    assert report.notification_error == "queue down"
    notifier.send_import_failed.assert_called_once()


@pytest.mark.asyncio
async def test_stream_closed_after_run() -> None:
    stream = io.BytesIO(b"https://example.com/1\n")
    service = _service()

    await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, stream)

    assert stream.closed


def test_import_run_moves_forward_only() -> None:
    """Test states cannot be skipped or repeated."""
    run = ImportRun(ImportReport(user_id="u", file_name="f", kind=ParserKind.URL_LIST))

    with pytest.raises(InvalidTransitionError):
        run.advance(ImportState.PARSING)

    run.advance(ImportState.CLASSIFIED)
    run.advance(ImportState.PARSING)
    run.advance(ImportState.AGGREGATING)
    run.advance(ImportState.NOTIFIED)

    with pytest.raises(InvalidTransitionError):
        run.advance(ImportState.NOTIFIED)
    assert run.state == ImportState.NOTIFIED


class FailMarkerExtractor(ContentExtractor):
    """Extractor that fails for documents containing FAIL."""

    def extract(self, html: str, url: str) -> ParsedArticle:
        if "FAIL" in html:
            raise ContentExtractionError(f"cannot parse {url}")
        return ParsedArticle(title="Extracted", content=html, text_content=html)


@pytest.mark.asyncio
async def test_oversized_csv_record_does_not_abort_run() -> None:
    """Test rows after a record the csv module rejects are still dispatched."""
    huge = "https://example.com/" + "a" * 200_000
    data = f"https://example.com/1\nhttps://example.com/2\nhttps://example.com/3\n{huge}\nhttps://example.com/4\n"
    url_handler = AsyncMock(return_value="task")
    service = _service(url_handler=url_handler)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO(data.encode()))

    assert report.fatal_error is None
    assert (report.imported, report.failed) == (4, 1)
    assert url_handler.call_args_list[-1].args[1] == "https://example.com/4"


@pytest.mark.asyncio
async def test_mixed_archive_totals_match_discovered_items() -> None:
    """Test every discovered archive item is counted exactly once."""
    manifest = (
        "Title,URL,Last Interaction Date,File Id\n"
        "Plain one,https://example.com/p1,,\n"
        "Plain two,https://example.com/p2,,\n"
        "Saved,https://example.com/s1,,1.html\n"
        "Broken,https://example.com/s2,,2.html\n"
        "Missing,https://example.com/s3,,3.html\n"
        "Bad,not a url,,\n"
    )
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("a/1.html", "<p>saved</p>")
        archive.writestr("_matter_history.csv", manifest)
        archive.writestr("2.html", "<p>FAIL</p>")
        archive.writestr("b/1.html", "<p>same name</p>")
        archive.writestr("orphan.html", "<p>orphan</p>")
    data = buffer.getvalue()

    parser = MatterArchiveParser(FailMarkerExtractor())
    discovered = list(parser.parse(io.BytesIO(data)))
    url_handler = AsyncMock(return_value="task")
    content_handler = AsyncMock(return_value="task")
    service = _service(parser=parser, url_handler=url_handler, content_handler=content_handler)

    report = await service.run_import("user-1", "MATTER.zip", ParserKind.MATTER_ARCHIVE, io.BytesIO(data))

    assert len(discovered) == 8
    assert report.imported + report.failed == len(discovered)
    assert (report.imported, report.failed) == (3, 5)
    assert url_handler.call_count == 2
    content_handler.assert_called_once()
    assert content_handler.call_args.args[3] == "<p>saved</p>"


@pytest.mark.asyncio
async def test_dispatches_progress_during_slow_parsing() -> None:
    """Test in-flight dispatches finish while the parser is busy extracting."""
    dispatched = threading.Event()

    class SlowParser(ImportParser):
        source = "test-importer"
        progressed: bool | None = None

        def parse(self, stream: BinaryIO) -> Iterator[DiscoveredItem]:
            yield UrlItem(url="https://example.com/0")
            # Blocks like decompression or extraction would
            SlowParser.progressed = dispatched.wait(timeout=2)
            yield UrlItem(url="https://example.com/1")

    async def handler(ctx, url: str) -> str:
        await asyncio.sleep(0.01)
        dispatched.set()
        return "task"

    service = _service(parser=SlowParser(), url_handler=handler)

    report = await service.run_import("user-1", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO())

    assert SlowParser.progressed is True
    assert report.imported == 2


@pytest.mark.asyncio
async def test_empty_user_id_rejected_before_run() -> None:
    """Test a run without a user is refused before anything is dispatched or sent."""
    url_handler = AsyncMock(return_value="task")
    notifier = AsyncMock()
    service = _service(url_handler=url_handler, notifier=notifier)

    with pytest.raises(ValueError, match="User id cannot be empty"):
        await service.run_import("", "URL_LIST.csv", ParserKind.URL_LIST, io.BytesIO(b"https://example.com/\n"))

    url_handler.assert_not_called()
    assert notifier.method_calls == []


@pytest.mark.asyncio
async def test_custom_path_prefix_extracts_user() -> None:
    """Test uploads under a configured prefix are attributed to their user."""
    notifier = AsyncMock()
    storage = _storage(b"https://example.com/1\nhttps://example.com/2\n")
    service = ImportService(
        parsers={ParserKind.URL_LIST: UrlListParser()},
        url_handler=AsyncMock(return_value="task"),
        content_handler=AsyncMock(),
        notification_service=notifier,
        storage=storage,
        imports_config=ImportsConfig(path_prefix="uploads/"),
    )

    report = await service.handle_event(StorageEvent("uploads/user-7/URL_LIST.csv", "b", "text/csv"))

    assert report.user_id == "user-7"
    notifier.send_import_completed.assert_called_once_with("user-7", 2, 0)
