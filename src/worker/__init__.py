"""Worker pools, job submission/polling and the CLI."""

from .queue import QueuedJob, WorkQueue
from .service import JobService, build_queues

__all__ = ["JobService", "QueuedJob", "WorkQueue", "build_queues"]
