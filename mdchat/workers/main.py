"""ARQ worker entrypoint."""

import logging

from arq.connections import RedisSettings

from mdchat.core.config import get_settings
from mdchat.core.deps import start_services
from mdchat.workers.ingest import process_document


def _redis_settings() -> RedisSettings:
    """Parse REDIS_URL into ARQ RedisSettings."""
    return RedisSettings.from_dsn(get_settings().redis_url)


async def startup(ctx: dict) -> None:
    """Called when the worker starts."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx["services"] = await start_services(settings, worker=True)


async def shutdown(ctx: dict) -> None:
    """Called when the worker shuts down."""
    services = ctx.pop("services", None)
    if services is not None:
        await services.aclose()


class WorkerSettings:
    """ARQ worker configuration."""
    functions = [process_document]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = _redis_settings()
    max_jobs = 10
    job_timeout = 600  # 10 minutes per document
    allow_abort_jobs = True


if __name__ == "__main__":
    from arq import run_worker
    run_worker(WorkerSettings)  # type: ignore[arg-type]
