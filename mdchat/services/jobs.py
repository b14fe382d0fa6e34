"""In-process processing jobs — fire-and-forget with per-document cancellation.

``submit()`` returns immediately; clients poll the document status. At most
one job per document is tracked: submitting again cancels the previous run,
and deleting a document cancels (and waits for) its job.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Protocol

from mdchat.services.pipeline import DocumentProcessor, ProcessingResult

logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    """Where DocumentService sends processing work: in process or to the arq worker."""

    async def submit(self, document_id: uuid.UUID) -> Any: ...

    async def cancel(self, document_id: uuid.UUID) -> bool: ...


class ProcessingQueue:
    def __init__(self, processor: DocumentProcessor) -> None:
        self.processor = processor
        self._tasks: dict[uuid.UUID, asyncio.Task] = {}

    def is_running(self, document_id: uuid.UUID) -> bool:
        task = self._tasks.get(document_id)
        return task is not None and not task.done()

    async def submit(self, document_id: uuid.UUID) -> asyncio.Task:
        """Start processing ``document_id`` in the background."""
        # A concurrent submit may register its task while we wait on cancel
        while self.is_running(document_id):
            await self.cancel(document_id)
        task = asyncio.create_task(self._run(document_id), name=f"process-document-{document_id}")
        self._tasks[document_id] = task
        task.add_done_callback(lambda t: self._forget(document_id, t))
        return task

    async def _run(self, document_id: uuid.UUID) -> ProcessingResult | None:
        try:
            return await self.processor.process(document_id)
        except asyncio.CancelledError:
            logger.info("Processing of document %s cancelled", document_id)
            raise
        except Exception:
            logger.exception("Background processing failed for document %s", document_id)
            return None

    def _forget(self, document_id: uuid.UUID, task: asyncio.Task) -> None:
        if self._tasks.get(document_id) is task:
            del self._tasks[document_id]

    async def cancel(self, document_id: uuid.UUID) -> bool:
        """Cancel the in-flight job for a document and wait until it has stopped."""
        task = self._tasks.get(document_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def wait(self, document_id: uuid.UUID) -> ProcessingResult | None:
        """Block until the document's current job finishes (None if no job or cancelled)."""
        task = self._tasks.get(document_id)
        if task is None:
            return None
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    async def join(self) -> None:
        """Wait for every in-flight job."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel and await every in-flight job."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
