# provisioning_engine/orchestrator/readiness.py
"""Waiting for managed resources to reach a steady state, with exponential backoff."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from provisioning_engine.core.errors import (
    DependencyUnready,
    ProvisioningCancelled,
    ProvisioningFailed,
    ResourceNotFound,
)
from provisioning_engine.core.models import ResourceStatus
from provisioning_engine.providers.base import ResourceProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff.

    Delays grow initial_delay, initial_delay * multiplier, ... capped at
    max_delay; the whole wait gives up after timeout seconds.
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    timeout: float = 1800.0
    max_unready_attempts: int = 5

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            initial_delay=settings.readiness_initial_delay,
            max_delay=settings.readiness_max_delay,
            multiplier=settings.readiness_multiplier,
            timeout=settings.readiness_timeout_seconds,
        )

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        while True:
            yield delay
            delay = min(delay * self.multiplier, self.max_delay)


def _sleep(delay: float, cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is None:
        time.sleep(delay)
        return
    if cancel_event.wait(delay):
        raise ProvisioningCancelled("Run cancelled while waiting")


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ProvisioningCancelled("Run cancelled")


def wait_until_ready(
    provider: ResourceProvider,
    logical_id: str,
    physical_id: str,
    policy: RetryPolicy,
    cancel_event: Optional[threading.Event] = None,
    context: Optional[Dict[str, Any]] = None,
) -> ResourceStatus:
    """
    Poll until the resource reports "ready".

    Raises:
        ProvisioningFailed: provider reported failure, resource vanished, or timeout
        ProvisioningCancelled: cancel_event was set
    """
    started = time.monotonic()

    for delay in policy.delays():
        _check_cancelled(cancel_event)

        try:
            status = provider.describe(physical_id, context)
        except ResourceNotFound:
            raise ProvisioningFailed(logical_id, f"{physical_id} disappeared while provisioning")

        if status.status == "ready":
            return status

        if status.status == "failed":
            raise ProvisioningFailed(logical_id, status.reason or "provider reported failure")

        elapsed = time.monotonic() - started
        if elapsed + delay > policy.timeout:
            raise ProvisioningFailed(
                logical_id,
                f"not ready after {int(elapsed)}s (status: {status.status})",
            )

        logger.debug(f"[readiness] {logical_id} is {status.status}, checking again in {delay:.1f}s")
        _sleep(delay, cancel_event)

    raise AssertionError("unreachable")


def wait_until_deleted(
    provider: ResourceProvider,
    logical_id: str,
    physical_id: str,
    policy: RetryPolicy,
    cancel_event: Optional[threading.Event] = None,
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Poll until the provider no longer knows the resource."""
    started = time.monotonic()

    for delay in policy.delays():
        _check_cancelled(cancel_event)

        try:
            status = provider.describe(physical_id, context)
        except ResourceNotFound:
            return

        if status.status == "failed":
            raise ProvisioningFailed(logical_id, status.reason or "deletion failed")

        elapsed = time.monotonic() - started
        if elapsed + delay > policy.timeout:
            raise ProvisioningFailed(logical_id, f"still present after {int(elapsed)}s")

        _sleep(delay, cancel_event)


def retry_unready(
    fn: Callable[[], T],
    policy: RetryPolicy,
    cancel_event: Optional[threading.Event] = None,
) -> T:
    """Call fn, retrying with backoff while it raises DependencyUnready."""
    attempt = 0
    for delay in policy.delays():
        _check_cancelled(cancel_event)
        try:
            return fn()
        except DependencyUnready as e:
            attempt += 1
            if attempt >= policy.max_unready_attempts:
                raise
            logger.info(f"[readiness] {e}; retrying in {delay:.1f}s (attempt {attempt})")
            _sleep(delay, cancel_event)

    raise AssertionError("unreachable")
