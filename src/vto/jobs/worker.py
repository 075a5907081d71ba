"""Queue-polling workers.

Each TranscodeWorker runs its own loop on a thread: receive at most one
message with a bounded wait, process it, then delete it. The message is
deleted whatever the outcome; failures surface through task status, not
redelivery. Broker errors are logged and the loop continues after the
poll interval.

WorkerPool starts a fixed number of workers and coordinates shutdown: a
SIGTERM/SIGINT stops workers from starting new receive cycles, in-flight
tasks get a grace period to finish, and encodes still running after it
are terminated.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time

from vto.core.errors import TransportError
from vto.executor.engine import ExecutionEngine
from vto.jobs.processor import TaskOutcome, TaskProcessor
from vto.logging import task_context, worker_context
from vto.queue.broker import QueueBroker, ReceivedMessage

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 2
DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_SHUTDOWN_GRACE_PERIOD = 30.0

# How often the pool's supervising loop wakes up
_SUPERVISE_INTERVAL = 1.0
_TERMINATE_JOIN_TIMEOUT = 10.0


class TranscodeWorker:
    """One independent receive-process-delete loop."""

    def __init__(
        self,
        worker_id: str,
        queue: QueueBroker,
        processor: TaskProcessor,
        stop_event: threading.Event,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.worker_id = worker_id
        self.queue = queue
        self.processor = processor
        self.poll_interval = poll_interval
        self._stop = stop_event
        self.tasks_processed = 0
        self.outcomes: dict[TaskOutcome, int] = {}

    def run(self) -> int:
        """Loop until the stop event is set.

        Returns:
            Number of messages processed.
        """
        with worker_context(self.worker_id):
            logger.info("Worker started")
            while not self._stop.is_set():
                self.run_once()
            logger.info("Worker stopped after %d task(s)", self.tasks_processed)
        return self.tasks_processed

    def run_once(self) -> bool:
        """Run one receive cycle. Returns True if a message was processed."""
        try:
            received = self.queue.receive(1, wait_seconds=self.poll_interval)
        except TransportError as e:
            logger.warning("Failed to receive messages: %s", e)
            self._stop.wait(self.poll_interval)
            return False

        for item in received:
            self._handle(item)
        return bool(received)

    def _handle(self, item: ReceivedMessage) -> None:
        task_id = item.message.task_id
        with task_context(task_id):
            if item.receive_count > 1:
                logger.warning(
                    "Message %s for task %s delivered %d times",
                    item.message_id,
                    task_id,
                    item.receive_count,
                )
            outcome = self.processor.process(item.message)
            self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1
            self.tasks_processed += 1
            try:
                self.queue.delete(item.receipt_handle)
            except TransportError as e:
                logger.warning("Failed to delete message %s: %s", item.message_id, e)


class WorkerPool:
    """Runs a fixed number of TranscodeWorkers on threads."""

    def __init__(
        self,
        queue: QueueBroker,
        processor: TaskProcessor,
        engine: ExecutionEngine,
        concurrency: int = DEFAULT_CONCURRENCY,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        shutdown_grace_period: float = DEFAULT_SHUTDOWN_GRACE_PERIOD,
    ) -> None:
        """Initialize the pool.

        Args:
            queue: Work queue shared by every worker.
            processor: Task processor shared by every worker.
            engine: Engine whose running encodes are terminated when the
                grace period runs out.
            concurrency: Number of worker threads.
            poll_interval: Bounded receive wait in seconds.
            shutdown_grace_period: Seconds to wait for in-flight tasks.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.engine = engine
        self.concurrency = concurrency
        self.shutdown_grace_period = shutdown_grace_period
        self._stop = threading.Event()
        self._workers = [
            TranscodeWorker(
                f"{i:02d}", queue, processor, self._stop, poll_interval=poll_interval
            )
            for i in range(1, concurrency + 1)
        ]
        self._threads: list[threading.Thread] = []

    @property
    def workers(self) -> list[TranscodeWorker]:
        return list(self._workers)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        """Start every worker thread."""
        if self._threads:
            raise RuntimeError("Worker pool already started")
        for worker in self._workers:
            thread = threading.Thread(
                target=worker.run,
                name=f"vto-worker-{worker.worker_id}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def request_shutdown(self) -> None:
        """Stop workers from starting new receive cycles."""
        self._stop.set()

    def wait(self) -> bool:
        """Wait up to the grace period for workers to finish.

        Encodes still running when the grace period expires are
        terminated, and the workers get a short bounded join to record
        the interrupted tasks.

        Returns:
            True if every worker finished within the grace period.
        """
        deadline = time.monotonic() + self.shutdown_grace_period
        for thread in self._threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))

        alive = [t.name for t in self._threads if t.is_alive()]
        if not alive:
            return True
        logger.warning(
            "Grace period of %.0fs expired with %d worker(s) busy: %s",
            self.shutdown_grace_period,
            len(alive),
            ", ".join(alive),
        )
        terminated = self.engine.terminate_all()
        if terminated:
            logger.warning("Terminated %d running encode(s)", terminated)

        # let workers record the interrupted tasks before the process exits
        deadline = time.monotonic() + _TERMINATE_JOIN_TIMEOUT
        for thread in self._threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
        still_alive = [t.name for t in self._threads if t.is_alive()]
        if still_alive:
            logger.error(
                "Worker(s) still busy after terminating encodes: %s",
                ", ".join(still_alive),
            )
        return False

    def run(self, install_signal_handlers: bool = True) -> int:
        """Start the pool and block until shutdown.

        Returns:
            Total number of messages processed by all workers.
        """
        if (
            install_signal_handlers
            and threading.current_thread() is threading.main_thread()
        ):
            self._setup_signal_handlers()

        start_time = time.time()
        logger.info(
            "Starting worker pool: PID=%d, concurrency=%d, grace=%.0fs",
            os.getpid(),
            self.concurrency,
            self.shutdown_grace_period,
        )
        self.start()

        while not self._stop.wait(_SUPERVISE_INTERVAL):
            if not any(t.is_alive() for t in self._threads):
                logger.error("All workers exited unexpectedly")
                break

        self.request_shutdown()
        self.wait()

        processed = sum(w.tasks_processed for w in self._workers)
        logger.info(
            "Worker pool finished: %d task(s) in %.1f seconds",
            processed,
            time.time() - start_time,
        )
        return processed

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, requesting shutdown...", sig_name)
        self._stop.set()
