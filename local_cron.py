#!/usr/bin/env python3
"""
StatusPulse Local Cron
Triggers the monitor-check endpoint of a locally running gate.

Usage:
    # Trigger once
    python local_cron.py

    # Keep triggering every 30 seconds
    python local_cron.py --daemon

    # Custom target / interval
    python local_cron.py --daemon --interval 60 --url http://localhost:3001/api/cron/check-monitors

    # Print a fresh value for CRON_SECRET
    python local_cron.py --generate-secret
"""

import argparse
import logging
import sys
import time
from typing import Optional

import httpx

from config import Settings
from security import generate_secure_token

logger = logging.getLogger("local_cron")


def run_check(url: str, secret: str, timeout: float = 60.0) -> Optional[dict]:
    """
    Trigger one monitor-check cycle.

    Returns:
        The endpoint's JSON payload, or None when the trigger failed.
        Failures are logged, never raised.
    """
    logger.info("Triggering monitor check...")
    try:
        response = httpx.get(
            url,
            headers={"Authorization": f"Bearer {secret}"},
            timeout=timeout,
        )
    except httpx.HTTPError as e:
        logger.error(f"Network error: {e}")
        return None

    if response.is_success:
        try:
            data = response.json()
        except ValueError:
            logger.error(f"Check returned invalid JSON: {response.text[:200]}")
            return None
        logger.info(f"Check successful: {data}")
        return data

    logger.error(f"Check failed: {response.status_code} {response.reason_phrase}")
    logger.error(response.text)
    return None


def run_daemon(url: str, secret: str, interval: int = 30):
    """Trigger immediately, then every `interval` seconds until interrupted."""
    logger.info(f"Local cron started. Running checks every {interval} seconds...")
    try:
        while True:
            run_check(url, secret)
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Local cron stopped")


def main(argv=None) -> int:
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="StatusPulse Local Cron")
    parser.add_argument("--daemon", action="store_true", help="Run continuously")
    parser.add_argument("--interval", type=int, default=settings.cron_interval,
                        help="Seconds between checks (daemon mode)")
    parser.add_argument("--url", default=settings.cron_url, help="Cron endpoint URL")
    parser.add_argument("--generate-secret", action="store_true",
                        help="Print a new random CRON_SECRET and exit")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level,
        format='[%(asctime)s] %(levelname)s %(message)s',
    )

    if args.generate_secret:
        print(generate_secure_token())
        return 0

    if not settings.cron_secret:
        logger.error("Set CRON_SECRET in .env")
        return 1

    if args.daemon:
        run_daemon(args.url, settings.cron_secret, args.interval)
        return 0

    return 0 if run_check(args.url, settings.cron_secret) is not None else 1


if __name__ == "__main__":
    sys.exit(main())
