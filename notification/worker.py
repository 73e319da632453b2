#!/usr/bin/env python3
"""
RQ worker for the notification task functions in notification.service.

Usage:
    python -m notification.worker [--config config.yaml] [--burst] [--queues notifications]
"""

import os
import sys
import argparse
import logging
from typing import List, Optional

from redis import Redis
from rq import Worker

from core.config_loader import AppConfig, load_config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_QUEUE = 'notifications'


def build_worker(config: AppConfig, queues: Optional[List[str]] = None) -> Worker:
    """Connect to the configured Redis and bind a worker to the queues."""
    redis_conn = Redis.from_url(config.redis.url, password=config.redis.password)
    redis_conn.ping()
    return Worker(queues or [DEFAULT_QUEUE], connection=redis_conn)


def start_worker(config_path: str, burst: bool = False, queues: Optional[List[str]] = None) -> None:
    # Task functions load their own config; keep them pointed at the same file
    os.environ['CONFIG_PATH'] = config_path
    config = load_config(config_path)

    try:
        worker = build_worker(config, queues)
        logger.info(f"Worker listening on {', '.join(queues or [DEFAULT_QUEUE])} (burst={burst})")
        worker.work(burst=burst)
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    except Exception as e:
        logger.error(f"Worker failed: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description='ModQueue notification worker')
    parser.add_argument('--config', default=os.environ.get('CONFIG_PATH', 'config.yaml'))
    parser.add_argument('--burst', action='store_true', help='Drain the queues and exit')
    parser.add_argument('--queues', nargs='+', default=[DEFAULT_QUEUE])
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    start_worker(args.config, burst=args.burst, queues=args.queues)


if __name__ == '__main__':
    main()
