"""Service container — one set of long-lived services per process."""

from __future__ import annotations

from dataclasses import dataclass

from arq.connections import RedisSettings, create_pool
from sqlalchemy.ext.asyncio import AsyncEngine

from mdchat.core.config import Settings, get_settings
from mdchat.core.database import build_engine, build_session_factory, init_db
from mdchat.services.chunk_cache import ChunkCache
from mdchat.services.documents import DocumentService
from mdchat.services.embedding import EmbeddingClient
from mdchat.services.hybrid import HybridRanker
from mdchat.services.jobs import Dispatcher, ProcessingQueue
from mdchat.services.orchestrator import ChatService
from mdchat.services.pipeline import DocumentProcessor
from mdchat.services.storage import Storage
from mdchat.workers.ingest import ArqDispatcher


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    storage: Storage
    embedder: EmbeddingClient
    cache: ChunkCache
    processor: DocumentProcessor
    queue: ProcessingQueue
    documents: DocumentService
    chat: ChatService
    hybrid: HybridRanker
    dispatcher: Dispatcher

    async def aclose(self) -> None:
        await self.queue.shutdown()
        if isinstance(self.dispatcher, ArqDispatcher):
            await self.dispatcher.aclose()
        await self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    embedder: EmbeddingClient | None = None,
    dispatcher: Dispatcher | None = None,
) -> Services:
    """Wire every service against one engine and one cache.

    Uploads are processed by ``dispatcher``, or by the in-process queue when
    none is given.
    """
    settings = settings or get_settings()
    engine = engine or build_engine(settings.database_url)
    storage = Storage(build_session_factory(engine))
    embedder = embedder or EmbeddingClient(settings)
    cache = ChunkCache(
        storage,
        ttl=settings.cache_ttl_seconds,
        batch_size=settings.similarity_batch_size,
        threshold=settings.similarity_threshold,
        default_limit=settings.search_top_k,
    )
    processor = DocumentProcessor(
        storage,
        embedder,
        cache,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    queue = ProcessingQueue(processor)
    hybrid = HybridRanker(
        cache,
        embedder,
        semantic_weight=settings.semantic_weight,
        keyword_weight=settings.keyword_weight,
    )
    dispatcher = dispatcher or queue
    return Services(
        settings=settings,
        engine=engine,
        storage=storage,
        embedder=embedder,
        cache=cache,
        processor=processor,
        queue=queue,
        documents=DocumentService(storage, dispatcher, cache, settings.max_upload_bytes),
        chat=ChatService(storage, cache, embedder, settings, hybrid=hybrid),
        hybrid=hybrid,
        dispatcher=dispatcher,
    )


async def start_services(settings: Settings | None = None, *, worker: bool = False) -> Services:
    """Build the container and make sure the tables exist.

    With ``processing_backend="arq"`` uploads are enqueued for the worker. The
    worker itself (``worker=True``) always processes in process.
    """
    settings = settings or get_settings()
    dispatcher = None
    if settings.processing_backend == "arq" and not worker:
        redis = await create_pool(RedisSettings.from_dsn(settings.redis_url))
        dispatcher = ArqDispatcher(redis)
    services = build_services(settings, dispatcher=dispatcher)
    await init_db(services.engine)
    return services
