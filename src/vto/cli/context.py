"""Lazily-built application components shared by CLI commands."""

from __future__ import annotations

import logging
from functools import cached_property

from vto.config import VTOConfig
from vto.db import SQLiteDocumentStore
from vto.executor import ExecutionEngine, ProfileRegistry
from vto.jobs import TaskProcessor, WorkerPool
from vto.queue import QueueBroker, SQLiteBroker
from vto.storage import LocalBlobStore
from vto.tasks import TaskService, TaskStore
from vto.tools import PlatformCapabilities, get_platform

logger = logging.getLogger(__name__)


class AppContext:
    """Builds each component on first use from one VTOConfig.

    Commands only pay for what they touch: listing tasks never probes the
    platform, and detecting the platform never opens the queue.
    """

    def __init__(self, config: VTOConfig) -> None:
        self.config = config

    @cached_property
    def task_store(self) -> TaskStore:
        tasks = self.config.tasks
        return TaskStore(
            SQLiteDocumentStore(self.config.storage.database_path),
            max_retries=tasks.max_retries,
            enforce_max_retries=tasks.enforce_max_retries,
            list_limit_default=tasks.list_limit_default,
            list_limit_max=tasks.list_limit_max,
        )

    @cached_property
    def queue(self) -> QueueBroker:
        return QueueBroker(
            SQLiteBroker(self.config.storage.queue_path),
            visibility_timeout=self.config.worker.visibility_timeout,
        )

    @cached_property
    def blobs(self) -> LocalBlobStore:
        return LocalBlobStore(self.config.storage.blob_root)

    @cached_property
    def registry(self) -> ProfileRegistry:
        registry = ProfileRegistry()
        profiles_file = self.config.encoder.profiles_file
        if profiles_file is not None:
            registry.load_file(profiles_file)
        return registry

    @cached_property
    def capabilities(self) -> PlatformCapabilities:
        encoder = self.config.encoder
        return get_platform(encoder.ffmpeg_path, encoder.hw_mode)

    @cached_property
    def engine(self) -> ExecutionEngine:
        return ExecutionEngine(
            self.capabilities,
            registry=self.registry,
            ffmpeg_path=self.config.encoder.ffmpeg_path,
            timeout=self.config.worker.encode_timeout,
            test_sample=self.config.encoder.test_sample,
            temp_dir=self.config.worker.temp_dir,
        )

    @cached_property
    def service(self) -> TaskService:
        return TaskService(self.task_store, self.queue, registry=self.registry)

    def build_worker_pool(
        self,
        concurrency: int | None = None,
        poll_interval: float | None = None,
        output_container: str | None = None,
    ) -> WorkerPool:
        """Assemble a worker pool; non-None arguments override the config."""
        worker = self.config.worker
        processor = TaskProcessor(
            self.task_store,
            self.blobs,
            self.engine,
            temp_dir=worker.temp_dir,
            default_output_container=(
                output_container or worker.default_output_container
            ),
            abort_check_interval=worker.abort_check_interval,
        )
        return WorkerPool(
            self.queue,
            processor,
            self.engine,
            concurrency=concurrency or worker.concurrency,
            poll_interval=poll_interval or worker.poll_interval,
            shutdown_grace_period=worker.shutdown_grace_period,
        )
