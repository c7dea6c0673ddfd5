"""RQ worker process entrypoint for recording jobs."""

import logging

from rq import Worker
from rq.worker_pool import WorkerPool

from config import settings, validate_provider_settings
from services.audio_files import ensure_data_dirs
from services.recording_queue import get_redis_connection

logger = logging.getLogger(__name__)


def main():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    validate_provider_settings()
    ensure_data_dirs()
    redis_conn = get_redis_connection()
    concurrency = max(int(settings.WORKER_CONCURRENCY), 1)
    logger.info("Worker listening on %s (concurrency=%s)", settings.QUEUE_NAME, concurrency)
    if concurrency > 1:
        pool = WorkerPool([settings.QUEUE_NAME], connection=redis_conn, num_workers=concurrency)
        pool.start()
        return
    worker = Worker([settings.QUEUE_NAME], connection=redis_conn)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
