"""Processing worker task — runs the document pipeline out of process."""

from __future__ import annotations

import asyncio
import logging
import uuid

from arq.connections import ArqRedis
from arq.constants import result_key_prefix
from arq.jobs import Job, JobStatus

logger = logging.getLogger(__name__)

# Seconds to wait for the worker to confirm an abort
ABORT_TIMEOUT = 5.0


def job_id_for(document_id: uuid.UUID | str) -> str:
    """arq job id; arq refuses a second enqueue while one is queued or running."""
    return f"process:{document_id}"


async def process_document(ctx: dict, document_id: str) -> dict:
    """ARQ task: chunk, embed and persist one document.

    Args:
        ctx: ARQ worker context; ``ctx["services"]`` is set at worker startup.
        document_id: UUID of the Document to process.

    Returns:
        dict with status and chunk_count, or an error key.
    """
    services = ctx["services"]
    result = await services.processor.process(uuid.UUID(document_id))
    if result.status is None:
        logger.error("Document %s not found", document_id)
        return {"error": "document_not_found"}
    if result.error:
        return {"status": str(result.status), "error": result.error}
    return {"status": str(result.status), "chunk_count": result.chunk_count}


async def enqueue_processing(redis: ArqRedis, document_id: uuid.UUID) -> bool:
    """Queue a document for the worker. Returns False if it is already queued."""
    job = await redis.enqueue_job(
        "process_document",
        document_id=str(document_id),
        _job_id=job_id_for(document_id),
    )
    if job is None:
        logger.info("Document %s already queued for processing", document_id)
        return False
    return True


class ArqDispatcher:
    """Sends document processing to the arq worker.

    Used by DocumentService in place of the in-process ProcessingQueue when
    ``processing_backend`` is ``"arq"``.
    """

    def __init__(self, redis: ArqRedis, abort_timeout: float = ABORT_TIMEOUT) -> None:
        self.redis = redis
        self.abort_timeout = abort_timeout

    async def submit(self, document_id: uuid.UUID) -> bool:
        await self.cancel(document_id)
        # A kept result of an earlier run would make arq refuse the job id
        await self.redis.delete(result_key_prefix + job_id_for(document_id))
        return await enqueue_processing(self.redis, document_id)

    async def cancel(self, document_id: uuid.UUID) -> bool:
        """Abort the document's queued or running job. Returns True if it was aborted."""
        job = Job(job_id_for(document_id), self.redis)
        status = await job.status()
        if status not in (JobStatus.deferred, JobStatus.queued, JobStatus.in_progress):
            return False
        try:
            aborted = await job.abort(timeout=self.abort_timeout)
        except asyncio.TimeoutError:
            logger.warning("Worker did not confirm abort of document %s", document_id)
            return False
        logger.info("Aborted processing job for document %s: %s", document_id, aborted)
        return aborted

    async def aclose(self) -> None:
        await self.redis.aclose()
