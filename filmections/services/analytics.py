"""
Analytics sink for gameplay events.

Events are fire-and-forget: every event is logged, and when ANALYTICS_URL is set
it is also POSTed there as JSON from a background worker. Nothing is read back
and no failure is allowed to reach the caller, so game state can never depend on
analytics.

Events emitted by the game session:
    guess_submitted  {correct, mistakes, wasOneAway}
    group_found      {groupIndex, difficulty, mistakesSoFar}
    game_won         {mistakes, groups}
    game_lost        {mistakes, groupsFound}
    films_shuffled   {}
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 3
SEND_WORKERS = 2

_executor = None


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=SEND_WORKERS, thread_name_prefix="analytics")
    return _executor


class AnalyticsSink:
    """
    Args:
        url:      Collector endpoint; defaults to $ANALYTICS_URL. Log-only when unset.
        executor: Runs the POSTs (anything with submit()). Defaults to a shared
                  thread pool.
    """

    def __init__(self, url: Optional[str] = None, executor=None) -> None:
        self.url = url if url is not None else os.getenv("ANALYTICS_URL")
        self._executor = executor

    def track(self, event: str, **properties) -> None:
        logger.info("analytics event=%s properties=%s", event, properties)
        if not self.url:
            return

        payload = {"event": event, "properties": properties, "timestamp": int(time.time() * 1000)}
        executor = self._executor or _get_executor()
        executor.submit(self._send, event, payload)

    def _send(self, event: str, payload: dict) -> None:
        try:
            response = requests.post(self.url, json=payload, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.warning("Failed to send analytics event %s: %s", event, e)
