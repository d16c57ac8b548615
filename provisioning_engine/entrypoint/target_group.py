# provisioning_engine/entrypoint/target_group.py
"""Target group - tracks per-target health and picks healthy targets."""

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class TargetHealth(Enum):
    INITIAL = "initial"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass
class Target:
    target_id: str
    address: str  # base URL, e.g. "http://10.0.1.15:8978"
    health: TargetHealth = TargetHealth.INITIAL
    consecutive_successes: int = 0
    consecutive_failures: int = 0


class TargetGroup:
    """
    Health state per registered target.

    A target becomes HEALTHY after healthy_threshold consecutive successful
    probes and UNHEALTHY after unhealthy_threshold consecutive failures.
    Only HEALTHY targets receive traffic.
    """

    def __init__(
        self,
        port: int = 8978,
        health_check_path: str = "/",
        healthy_threshold: int = 2,
        unhealthy_threshold: int = 2,
    ):
        if healthy_threshold < 1 or unhealthy_threshold < 1:
            raise ValueError("Health thresholds must be at least 1")

        self.port = port
        self.health_check_path = health_check_path
        self.healthy_threshold = healthy_threshold
        self.unhealthy_threshold = unhealthy_threshold

        self._targets: Dict[str, Target] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> "TargetGroup":
        return cls(
            port=settings.container_port,
            health_check_path=settings.health_check_path,
            healthy_threshold=settings.healthy_threshold,
            unhealthy_threshold=settings.unhealthy_threshold,
        )

    # -------------------------
    # REGISTRATION
    # -------------------------

    def register(self, target_id: str, address: str) -> Target:
        with self._lock:
            target = Target(target_id=target_id, address=address.rstrip("/"))
            self._targets[target_id] = target
            logger.info(f"[target-group] registered {target_id} at {target.address}")
            return target

    def deregister(self, target_id: str) -> None:
        with self._lock:
            self._targets.pop(target_id, None)

    def targets(self) -> List[Target]:
        with self._lock:
            return list(self._targets.values())

    def get(self, target_id: str) -> Optional[Target]:
        return self._targets.get(target_id)

    # -------------------------
    # HEALTH
    # -------------------------

    def record_probe(self, target_id: str, success: bool) -> TargetHealth:
        with self._lock:
            target = self._targets.get(target_id)
            if target is None:
                raise KeyError(f"Unknown target {target_id}")

            previous = target.health

            if success:
                target.consecutive_successes += 1
                target.consecutive_failures = 0
                if (
                    target.health != TargetHealth.HEALTHY
                    and target.consecutive_successes >= self.healthy_threshold
                ):
                    target.health = TargetHealth.HEALTHY
            else:
                target.consecutive_failures += 1
                target.consecutive_successes = 0
                if (
                    target.health != TargetHealth.UNHEALTHY
                    and target.consecutive_failures >= self.unhealthy_threshold
                ):
                    target.health = TargetHealth.UNHEALTHY

            if target.health != previous:
                logger.info(
                    f"[target-group] {target_id}: {previous.value} -> {target.health.value}"
                )
            return target.health

    def healthy_targets(self) -> List[Target]:
        with self._lock:
            return [t for t in self._targets.values() if t.health == TargetHealth.HEALTHY]

    def next_target(self) -> Optional[Target]:
        """Round-robin over healthy targets; None if there are none."""
        healthy = self.healthy_targets()
        if not healthy:
            return None
        return healthy[next(self._counter) % len(healthy)]
