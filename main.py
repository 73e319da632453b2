"""
Flush scheduler.

Enqueues a flush task on the `notifications` RQ queue every
`notifications.flush_interval_seconds` until SIGINT/SIGTERM. Intake,
backup-scan and queue-size tasks are enqueued by the event source.

Usage:
    python main.py --config config.yaml
    python main.py --once
"""
import argparse
import logging
import signal
import time

from redis import Redis
from rq import Queue

from core.config_loader import load_config
from notification.service import flush_task
from notification.worker import DEFAULT_QUEUE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global flag for graceful shutdown
running = True


def signal_handler(sig, frame):
    global running
    logger.info("Shutdown signal received")
    running = False


def enqueue_flush(queue: Queue) -> None:
    try:
        job = queue.enqueue(flush_task, job_timeout='5m', result_ttl=3600)
        logger.info(f"Queued flush as job {job.id}")
    except Exception as e:
        logger.error(f"Failed to enqueue flush: {e}")


def main():
    parser = argparse.ArgumentParser(description='ModQueue notifier flush scheduler')
    parser.add_argument('--config', default='config.yaml')
    parser.add_argument('--once', action='store_true', help='Enqueue a single flush and exit')
    args = parser.parse_args()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    config = load_config(args.config)
    interval = config.notifications.flush_interval_seconds

    redis_conn = Redis.from_url(config.redis.url, password=config.redis.password)
    queue = Queue(DEFAULT_QUEUE, connection=redis_conn)

    if args.once:
        enqueue_flush(queue)
        return

    logger.info(f"Scheduling flush every {interval}s")
    while running:
        enqueue_flush(queue)
        waited = 0
        while running and waited < interval:
            time.sleep(1)
            waited += 1

    logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
