# provisioning_engine/orchestrator/scheduler.py
"""Dependency-respecting concurrent scheduler."""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from provisioning_engine.core.errors import ProvisioningCancelled

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    completed: List[str] = field(default_factory=list)
    failed: Dict[str, BaseException] = field(default_factory=dict)
    blocked: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled and not self.blocked

    def first_failure(self) -> Optional[str]:
        for logical_id, error in self.failed.items():
            if not isinstance(error, ProvisioningCancelled):
                return logical_id
        return None


class DependencyScheduler:
    """
    Runs an action on every node of a graph view.

    A node is submitted only once every node it depends on (in the view's
    direction) has completed. Independent nodes run in parallel, up to
    max_parallelism at a time.

    After the first failure, or once cancel_event is set, no new node is
    submitted; in-flight nodes are allowed to finish and the rest are
    reported as blocked.
    """

    def __init__(self, max_parallelism: int = 4):
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        self.max_parallelism = max_parallelism

    def run(
        self,
        view,
        action: Callable[[str], Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> ScheduleResult:
        nodes = view.nodes()
        remaining = {n: len(view.dependencies_of(n)) for n in nodes}
        ready = sorted((n for n in nodes if remaining[n] == 0), key=view.order_key)

        result = ScheduleResult()
        stop = False

        with ThreadPoolExecutor(max_workers=self.max_parallelism, thread_name_prefix="provision") as pool:
            in_flight: Dict[Future, str] = {}

            while in_flight or (ready and not stop):
                if cancel_event is not None and cancel_event.is_set() and not stop:
                    logger.info("[scheduler] cancellation requested, draining in-flight work")
                    result.cancelled = True
                    stop = True

                while ready and not stop and len(in_flight) < self.max_parallelism:
                    node = ready.pop(0)
                    logger.debug(f"[scheduler] submitting {node}")
                    in_flight[pool.submit(action, node)] = node

                if not in_flight:
                    break

                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)

                for future in done:
                    node = in_flight.pop(future)
                    error = future.exception()

                    if error is not None:
                        result.failed[node] = error
                        if isinstance(error, ProvisioningCancelled):
                            result.cancelled = True
                        else:
                            logger.error(f"[scheduler] {node} failed: {error}")
                        stop = True
                        continue

                    result.completed.append(node)
                    for dependent in view.dependents_of(node):
                        remaining[dependent] -= 1
                        if remaining[dependent] == 0:
                            ready.append(dependent)

                ready.sort(key=view.order_key)

        done_nodes = set(result.completed) | set(result.failed)
        result.blocked = [n for n in nodes if n not in done_nodes]

        logger.info(
            f"[scheduler] completed={len(result.completed)} failed={len(result.failed)} "
            f"blocked={len(result.blocked)} cancelled={result.cancelled}"
        )
        return result
