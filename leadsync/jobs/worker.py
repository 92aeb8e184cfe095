"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, builds the service container and runs the matching scheduler.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from leadsync.config import settings
from leadsync.container import ServiceContainer, build_container, start_container, stop_container
from leadsync.infrastructure.observability.logging import get_logger, setup_logging
from leadsync.jobs.sync_job import (
    start_notification_scheduler,
    start_queue_flush_scheduler,
    start_sync_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[[ServiceContainer], Awaitable[None]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "sync_scheduler": start_sync_scheduler,
    "queue_flush": start_queue_flush_scheduler,
    "digest_flush": start_notification_scheduler,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "sync_scheduler").strip().lower()


async def run_worker(job_name: str | None = None, container: ServiceContainer | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    container = container or build_container(settings)
    await start_container(container)
    logger.info("Starting background worker", job=name)
    try:
        await JOB_REGISTRY[name](container)
    finally:
        await stop_container(container)


def main() -> None:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL)
    asyncio.run(run_worker(_resolve_job_name()))


if __name__ == "__main__":
    main()
