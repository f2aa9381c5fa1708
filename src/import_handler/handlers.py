"""Dispatch capabilities handed to every import run."""

import uuid
from dataclasses import asdict
from typing import Callable, Optional

from import_handler.core import ImportContext, ParsedArticle, TaskQueue


class ImportHandlers:
    """Send discovered items to the downstream fetch and save tasks."""

    def __init__(
        self,
        task_queue: TaskQueue,
        content_fetch_url: str,
        content_save_url: str,
        request_id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self.task_queue = task_queue
        self.content_fetch_url = content_fetch_url
        self.content_save_url = content_save_url
        self.request_id_factory = request_id_factory

    async def url_handler(self, ctx: ImportContext, url: str) -> Optional[str]:
        """Enqueue a fetch-and-save task for a bare URL."""
        return await self.task_queue.enqueue(
            self.content_fetch_url,
            {
                "userId": ctx.user_id,
                "source": ctx.source,
                "url": url,
                "saveRequestId": self.request_id_factory(),
            },
        )

    async def content_handler(
        self,
        ctx: ImportContext,
        url: str,
        title: str,
        raw_content: str,
        parsed_content: ParsedArticle,
    ) -> Optional[str]:
        """Enqueue a save task for content that was already extracted."""
        return await self.task_queue.enqueue(
            self.content_save_url,
            {
                "userId": ctx.user_id,
                "source": ctx.source,
                "url": url,
                "clientRequestId": self.request_id_factory(),
                "title": title,
                "originalContent": raw_content,
                "parseResult": asdict(parsed_content),
            },
        )

