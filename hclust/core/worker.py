"""
Background clustering worker.

Runs clustering off the caller's thread. Each job gets a stop token from a
StopTokenStore; cancel() sets the token and the engine observes it at its
next iteration boundary.
"""

import dataclasses
import functools
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

from hclust.core.base_clustering import ClusteringResult, ClusterOptions
from hclust.core.cancellation import StopTokenStore, get_stop_token_store
from hclust.core.clustering_engine import cluster_data
from hclust.schemas.data_models import JobStatus
from hclust.utils.error_handling import ClusteringCancelledError

logger = logging.getLogger(__name__)


class ClusteringJob:
    """Handle for one submitted clustering run."""

    def __init__(self, job_id: str, stop_token: str, store: StopTokenStore):
        self.job_id = job_id
        self.stop_token = stop_token
        self.store = store
        self.future: Optional[Future] = None
        self._status = JobStatus.QUEUED
        self._status_lock = threading.Lock()

    @property
    def status(self) -> JobStatus:
        with self._status_lock:
            return self._status

    def _set_status(self, status: JobStatus) -> None:
        with self._status_lock:
            self._status = status
        logger.debug(f"Job {self.job_id} -> {status.value}")

    def cancel(self) -> None:
        """Request cancellation. A queued job is dropped before it starts."""
        if self.future is not None and self.future.cancel():
            self._set_status(JobStatus.CANCELED)
            self.store.release(self.stop_token)
            logger.info(f"Job {self.job_id} canceled before start")
            return
        if self.done():
            return
        self.store.stop(self.stop_token)
        logger.info(f"Cancellation requested for job {self.job_id}")

    def done(self) -> bool:
        return self.future is not None and self.future.done()

    def result(self, timeout: Optional[float] = None) -> ClusteringResult:
        """
        Wait for the run to finish.

        Raises:
            ClusteringCancelledError: If the job was canceled
            HClustError: Whatever the engine raised
            concurrent.futures.TimeoutError: If timeout elapses first
        """
        if self.future.cancelled():
            raise ClusteringCancelledError(details={"job_id": self.job_id})
        return self.future.result(timeout=timeout)


class ClusteringWorker:
    """
    Thread-pool executor for clustering jobs.

    Example:
        with ClusteringWorker() as worker:
            job = worker.submit(vectors)
            result = job.result()
    """

    def __init__(self, max_workers: int = 1, store: Optional[StopTokenStore] = None):
        """
        Initialize worker.

        Args:
            max_workers: Concurrent runs (runs on the shared engine are serialized)
            store: Stop-token store (defaults to the configured global store)
        """
        self.store = store or get_stop_token_store()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="hclust-worker",
        )
        logger.info(f"Initialized ClusteringWorker with {max_workers} thread(s)")

    def submit(
        self,
        vectors: Any,
        options: Optional[ClusterOptions] = None,
    ) -> ClusteringJob:
        """
        Schedule a clustering run.

        Args:
            vectors: Input vectors
            options: Clustering options; stop_token is replaced by the job's token

        Returns:
            ClusteringJob handle
        """
        job = ClusteringJob(
            job_id=uuid.uuid4().hex,
            stop_token=self.store.create(),
            store=self.store,
        )
        options = dataclasses.replace(
            options or ClusterOptions(),
            stop_token=functools.partial(self.store.is_stopped, job.stop_token),
        )
        job.future = self._executor.submit(self._execute, job, vectors, options)
        logger.info(f"Submitted clustering job {job.job_id}")
        return job

    def _execute(
        self,
        job: ClusteringJob,
        vectors: Any,
        options: ClusterOptions,
    ) -> ClusteringResult:
        job._set_status(JobStatus.RUNNING)
        try:
            result = cluster_data(vectors, options)
        except ClusteringCancelledError:
            job._set_status(JobStatus.CANCELED)
            raise
        except Exception as e:
            job._set_status(JobStatus.FAILED)
            logger.error(f"Job {job.job_id} failed: {e}")
            raise
        finally:
            self.store.release(job.stop_token)

        job._set_status(JobStatus.COMPLETED)
        return result

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        logger.info("ClusteringWorker shut down")

    def __enter__(self) -> "ClusteringWorker":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)

