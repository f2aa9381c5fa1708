"""CLI entry point for the import handler."""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from import_handler.adapters.extraction import HtmlArticleExtractor
from import_handler.adapters.notifications import EmailNotifier
from import_handler.adapters.parsers import MatterArchiveParser, UrlListParser
from import_handler.adapters.storage import GCSStorage, LocalStorage
from import_handler.adapters.tasks import CloudTasksQueue, DirectHttpQueue
from import_handler.config import Settings, get_settings
from import_handler.core import ImportReport, ObjectStorage, ParserKind, TaskQueue
from import_handler.core.classifier import decode_pubsub_push, is_storage_event, to_storage_event
from import_handler.handlers import ImportHandlers
from import_handler.use_cases import ImportService

app = typer.Typer(help="Import link lists and read-it-later archives.")


def build_task_queue(settings: Settings) -> TaskQueue:
    if settings.tasks.use_cloud_tasks:
        return CloudTasksQueue(
            project_id=settings.tasks.project_id,
            location=settings.tasks.location,
            queue=settings.tasks.queue,
            access_token=settings.gcp_access_token,
            timeout=settings.tasks.timeout,
        )
    return DirectHttpQueue(timeout=settings.tasks.timeout)


def build_service(settings: Settings, storage: Optional[ObjectStorage] = None) -> ImportService:
    """Wire adapters into an import service."""
    task_queue = build_task_queue(settings)
    handlers = ImportHandlers(
        task_queue=task_queue,
        content_fetch_url=settings.tasks.content_fetch_url,
        content_save_url=settings.tasks.content_save_url,
    )
    notifier = EmailNotifier(
        task_queue=task_queue,
        email_url=settings.tasks.email_user_url,
        jwt_secret=settings.jwt_secret,
        token_ttl_seconds=settings.email.token_ttl_seconds,
        product_name=settings.email.product_name,
        feedback_address=settings.email.feedback_address,
    )
    parsers = {
        ParserKind.MATTER_ARCHIVE: MatterArchiveParser(HtmlArticleExtractor()),
        ParserKind.URL_LIST: UrlListParser(),
    }
    return ImportService(
        parsers=parsers,
        url_handler=handlers.url_handler,
        content_handler=handlers.content_handler,
        notification_service=notifier,
        storage=storage,
        imports_config=settings.imports,
        max_concurrent_dispatches=settings.max_concurrent_dispatches,
    )


def print_report(report: Optional[ImportReport]) -> None:
    if report is None:
        print("Event ignored")
        return

    print("\n" + "=" * 70)
    print(f"{'✅' if report.succeeded else '❌'} {report.file_name}")
    print("=" * 70)
    print(f"  • User: {report.user_id}")
    print(f"  • Imported: {report.imported}")
    print(f"  • Failed: {report.failed}")
    print(f"  • Email: {report.notification}")
    if report.fatal_error:
        print(f"  • Aborted: {report.fatal_error}")
    if report.notification_error:
        print(f"  • Email error: {report.notification_error}")


@app.command("import-file")
def import_file(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Export file to import"),
    user_id: str = typer.Option(..., "--user-id", help="User the items are imported for"),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="YAML config file"),
) -> None:
    """Import a local export file for a user."""
    if not user_id.strip():
        print("❌ User id cannot be empty")
        raise typer.Exit(code=1)

    settings = get_settings(config)
    service = build_service(settings)

    kind = service.classify(path.name)
    if kind is None:
        print(f"❌ Unsupported file: {path.name}")
        raise typer.Exit(code=1)

    async def run() -> ImportReport:
        with open(path, "rb") as stream:
            return await service.run_import(user_id, path.name, kind, stream)

    print_report(asyncio.run(run()))


@app.command("handle-event")
def handle_event(
    event_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON storage event"),
    pubsub: bool = typer.Option(False, "--pubsub", help="File holds a Pub/Sub push body"),
    local: bool = typer.Option(False, "--local", help="Read objects from the local storage root"),
    local_root: Optional[Path] = typer.Option(None, "--local-root", help="Override the local storage root"),
    config: Path = typer.Option(Path("config.yaml"), "--config", help="YAML config file"),
) -> None:
    """Process one storage write event."""
    settings = get_settings(config)
    body = json.loads(event_file.read_text(encoding="utf-8"))

    if pubsub:
        event = decode_pubsub_push(body)
    else:
        event = to_storage_event(body) if is_storage_event(body) else None

    if event is None:
        print("No storage event found")
        return

    storage: ObjectStorage
    if local or local_root is not None:
        storage = LocalStorage(local_root or settings.storage.local_root)
    else:
        storage = GCSStorage(
            access_token=settings.gcp_access_token,
            api_base_url=settings.storage.api_base_url,
            spool_max_bytes=settings.storage.spool_max_bytes,
        )

    service = build_service(settings, storage)
    print_report(asyncio.run(service.handle_event(event)))


if __name__ == "__main__":
    app()
