"""Shared test fixtures — throwaway SQLite DB + services with a fake embedder."""

import asyncio
import re
import zlib
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from mdchat.core.config import Settings
from mdchat.core.database import build_session_factory, init_db
from mdchat.core.deps import Services, build_services
from mdchat.core.errors import ProviderError
from mdchat.services.embedding import EmbeddingClient
from mdchat.services.storage import Storage

FAKE_DIMENSIONS = 64
_WORD = re.compile(r"[a-z0-9]+")


def fake_vector(text: str) -> list[float]:
    """Deterministic bag-of-words vector: shared words -> higher cosine."""
    vector = [0.0] * FAKE_DIMENSIONS
    for word in _WORD.findall(text.lower()):
        vector[zlib.crc32(word.encode()) % FAKE_DIMENSIONS] += 1.0
    return vector


class FakeEmbedder(EmbeddingClient):
    """Embeds locally; can be told to fail or to block on a gate."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.calls: list[str] = []
        self.fail_on: str | None = None
        self.gate: asyncio.Event | None = None

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_on is not None and self.fail_on in text:
            raise ProviderError("Failed to create embedding: rate limit exceeded")
        return fake_vector(text)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite://",
        provider_max_retries=0,
        provider_retry_base_delay=0.0,
        provider_retry_max_delay=0.0,
        similarity_threshold=0.0,
        cache_ttl_seconds=300,
    )


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def storage(engine) -> Storage:
    return Storage(build_session_factory(engine))


@pytest.fixture
def embedder(settings) -> FakeEmbedder:
    return FakeEmbedder(settings)


@pytest.fixture
async def services(settings, engine, embedder) -> AsyncGenerator[Services, None]:
    svc = build_services(settings, engine=engine, embedder=embedder)
    yield svc
    await svc.queue.shutdown()
