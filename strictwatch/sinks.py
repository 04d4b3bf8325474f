"""
strictwatch/sinks.py - Destinations for violation reports

Every sink honours the same contract: report() never raises. Delivery
guarantees are the sink's business, not the watchdog's.
"""
from __future__ import annotations

import logging
import os
import queue
import threading
import time
from typing import Any, Protocol, runtime_checkable

import httpx

from .violation import Violation

logger = logging.getLogger(__name__)


@runtime_checkable
class Sink(Protocol):
    def report(self, violation: Violation) -> None:
        ...


class NullSink:
    def report(self, violation: Violation) -> None:
        pass


class LoggingSink:
    """Forward violations to a logger as structured records."""

    def __init__(self, logger_name: str = "strictwatch.sink", level: int = logging.WARNING):
        self.logger = logging.getLogger(logger_name)
        self.level = level

    def report(self, violation: Violation) -> None:
        try:
            payload = violation.to_dict()
        except Exception:
            payload = {"violation": repr(violation)}
        self.logger.log(self.level, "violation reported: %s", payload, extra={"violation": payload})


class MemorySink:
    """
    Bounded in-memory buffer.

    When full, incoming violations are rejected and counted in
    dropped_count rather than evicting older ones.
    """

    def __init__(self, capacity: int = 1000):
        self.capacity = capacity
        self.violations: list[Violation] = []
        self.dropped_count: int = 0
        self._lock = threading.Lock()

    def report(self, violation: Violation) -> None:
        with self._lock:
            if len(self.violations) >= self.capacity:
                self.dropped_count += 1
                return
            self.violations.append(violation)

    def flush(self) -> list[Violation]:
        with self._lock:
            batch = list(self.violations)
            self.violations.clear()
        return batch

    def get_dropped_count(self) -> int:
        with self._lock:
            c = self.dropped_count
            self.dropped_count = 0
        return c

    def __len__(self) -> int:
        with self._lock:
            return len(self.violations)


_STOP = object()


class HttpSink:
    """
    Ship violations to a remote collector without blocking the reporter.

    report() only enqueues. A daemon worker batches and POSTs, retrying
    server errors with exponential backoff. After max_consecutive_failures
    failed batches the sink goes offline and every later violation is
    dropped and counted.

    close(timeout) delivers whatever is still queued within the timeout.
    The watchdog calls it before terminate-process so a fatal violation
    reaches the collector before the process ends.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        path: str = "/api/v1/violations",
        max_retries: int = 5,
        retry_min_wait: float = 1.0,
        retry_max_wait: float = 10.0,
        batch_size: int = 10,
        queue_size: int = 1000,
        max_consecutive_failures: int = 3,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
        start_worker: bool = True,
    ):
        self.base_url = base_url or os.getenv("STRICTWATCH_HTTP_URL", "http://localhost:8000")
        self.api_key = api_key or os.getenv("STRICTWATCH_API_KEY")
        self.path = path
        self.max_retries = max(1, max_retries)
        self.retry_min_wait = retry_min_wait
        self.retry_max_wait = retry_max_wait
        self.batch_size = batch_size
        self.max_consecutive_failures = max_consecutive_failures

        if http_client is None:
            http_client = httpx.Client(
                base_url=self.base_url,
                timeout=timeout,
                headers={"Content-Type": "application/json"},
            )
            if self.api_key:
                http_client.headers["Authorization"] = f"Bearer {self.api_key}"
        self.http_client = http_client

        self.pending: queue.Queue[Any] = queue.Queue(maxsize=queue_size)
        self.dropped_count = 0
        self.sent_count = 0
        self.consecutive_failures = 0
        self.server_offline = False
        self.closed = False
        self._deadline: float | None = None
        self._count_lock = threading.Lock()
        self._close_lock = threading.Lock()

        self._worker: threading.Thread | None = None
        if start_worker:
            self._worker = threading.Thread(target=self._run, name="strictwatch-http-sink", daemon=True)
            self._worker.start()

    def report(self, violation: Violation) -> None:
        if self.server_offline or self.closed:
            self._count_drops(1)
            return
        try:
            self.pending.put_nowait(violation.to_dict())
        except queue.Full:
            self._count_drops(1)
        except Exception:
            logger.warning("HttpSink could not serialise violation %r", violation, exc_info=True)
            self._count_drops(1)

    def drain(self, deadline: float | None = None) -> None:
        """Send everything currently queued, on the calling thread."""
        while True:
            batch = self._take_batch(block=False)
            batch = [item for item in batch if item is not _STOP]
            if not batch:
                return
            self._send(batch, deadline)

    def close(self, timeout: float = 5.0) -> None:
        """Deliver what is queued, spending at most `timeout` seconds, then release the client."""
        with self._close_lock:
            if self.closed:
                return
            self.closed = True
            self._deadline = time.monotonic() + timeout
            if self._worker is not None and self._worker.is_alive():
                self.pending.put(_STOP)
                self._worker.join(timeout)
            else:
                self.drain(self._deadline)
            self.http_client.close()

    def _run(self) -> None:
        while True:
            batch = self._take_batch(block=True)
            stop = bool(batch) and batch[-1] is _STOP
            if stop:
                batch = batch[:-1]
            if batch:
                self._send(batch, self._deadline)
            if stop:
                return

    def _take_batch(self, block: bool) -> list[Any]:
        batch: list[Any] = []
        try:
            batch.append(self.pending.get(block=block))
        except queue.Empty:
            return batch
        while len(batch) < self.batch_size and batch[-1] is not _STOP:
            try:
                batch.append(self.pending.get_nowait())
            except queue.Empty:
                break
        return batch

    def _send(self, batch: list[dict[str, Any]], deadline: float | None) -> None:
        if self.server_offline:
            self._count_drops(len(batch))
            return

        if self._post(batch, deadline):
            self.sent_count += len(batch)
            self.consecutive_failures = 0
            return

        self._count_drops(len(batch))
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.max_consecutive_failures:
            logger.error(
                "Collector offline after %d failed batches; HttpSink now drops all violations",
                self.consecutive_failures,
            )
            self.server_offline = True

    def _post(self, batch: list[dict[str, Any]], deadline: float | None) -> bool:
        """
        POST one batch. Returns True once the collector accepts it.

        4xx is final. 5xx and transport errors are retried with backoff
        until max_retries attempts are spent or the next wait would pass
        `deadline`.
        """
        wait = self.retry_min_wait
        reason = "no attempt made"
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.http_client.post(self.path, json={"violations": batch})
            except httpx.TimeoutException as e:
                reason = f"timeout: {e}"
            except httpx.TransportError as e:
                reason = f"network failure: {e}"
            except Exception as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                if response.status_code < 400:
                    return True
                reason = f"HTTP {response.status_code}"
                if response.status_code < 500:
                    logger.warning("Collector rejected %d violations (%s)", len(batch), reason)
                    return False

            if attempt == self.max_retries:
                break
            if deadline is not None and time.monotonic() + wait > deadline:
                logger.warning("Delivery deadline reached after %d attempts", attempt)
                break
            logger.debug("Retry %d/%d in %.2fs (%s)", attempt, self.max_retries, wait, reason)
            time.sleep(wait)
            wait = min(wait * 2, self.retry_max_wait)

        logger.warning("Dropped %d violations after delivery failure (%s)", len(batch), reason)
        return False

    def _count_drops(self, n: int) -> None:
        with self._count_lock:
            self.dropped_count += n
