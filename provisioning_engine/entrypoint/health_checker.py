# provisioning_engine/entrypoint/health_checker.py
"""
Target health checker - probes every registered target on an interval.

A probe is an HTTP GET on the health check path; 200-399 counts as a
success, anything else (including a timeout) as a failure.
"""

import logging
import threading
from typing import Optional

import requests

from provisioning_engine.entrypoint.target_group import Target, TargetGroup

logger = logging.getLogger(__name__)


class TargetHealthChecker:
    def __init__(
        self,
        target_group: TargetGroup,
        interval: int = 20,
        timeout: int = 10,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            target_group: Targets to probe (results are recorded on it)
            interval: Seconds between probe cycles
            timeout: Per-probe timeout in seconds
            session: requests session (injectable for tests)
        """
        self.target_group = target_group
        self.interval = interval
        self.timeout = timeout
        self._session = session or requests.Session()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def from_settings(cls, target_group: TargetGroup, settings) -> "TargetHealthChecker":
        return cls(
            target_group,
            interval=settings.health_check_interval_seconds,
            timeout=settings.health_check_timeout_seconds,
        )

    def probe(self, target: Target) -> bool:
        url = f"{target.address}{self.target_group.health_check_path}"
        try:
            response = self._session.get(url, timeout=self.timeout, allow_redirects=False)
        except requests.exceptions.RequestException as e:
            logger.debug(f"[health] {target.target_id} probe failed: {e}")
            return False
        return 200 <= response.status_code < 400

    def run_once(self) -> None:
        """Single probe cycle over all targets."""
        for target in self.target_group.targets():
            self.target_group.record_probe(target.target_id, self.probe(target))

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="target-health", daemon=True)
        self._thread.start()
        logger.info(f"[health] checker started (interval={self.interval}s, timeout={self.timeout}s)")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.timeout + 1)
        logger.info("[health] checker stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except KeyError as e:
                # target deregistered mid-cycle
                logger.debug(f"[health] skipped probe result: {e}")
            self._stop_event.wait(self.interval)
