"""Job Store - In-memory records for asynchronous executions.

A job is created when a caller asks for callback delivery, moves through
`processing` while the tool runs, ends `completed` or `failed`, and is
marked `callback_failed` if the result could not be delivered.
"""

import logging
import random
import string
import time
from typing import Any, Dict, Optional

from .exceptions import JobNotFoundError
from .types import Job, JobStatus, utc_now

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase

FINISHED_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CALLBACK_FAILED)


def generate_job_id() -> str:
    """`job_<epoch ms>_<7 random base36 chars>`."""
    suffix = "".join(random.choices(_BASE36, k=7))
    return f"job_{int(time.time() * 1000)}_{suffix}"


class JobStore:
    """Process-local job records keyed by job id."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    def create_job(
        self,
        tool_name: str,
        payload: Any,
        callback_url: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        base_url: str = "",
    ) -> str:
        """
        Register a pending job.

        Args:
            tool_name: Tool to execute
            payload: Caller arguments
            callback_url: Where the outcome will be POSTed
            headers: Caller headers kept for the deferred execution
            base_url: Public base URL used to build the poll URL

        Returns:
            The new job id
        """
        job_id = generate_job_id()
        while job_id in self._jobs:
            job_id = generate_job_id()

        self._jobs[job_id] = Job(
            job_id=job_id,
            tool_name=tool_name,
            input=payload,
            poll_url=f"{base_url.rstrip('/')}/status/{job_id}",
            callback_url=callback_url,
            headers=dict(headers or {}),
        )
        logger.info(f"Created job {job_id} for tool {tool_name}")
        return job_id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def require_job(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def update(self, job_id: str, **changes: Any) -> Job:
        """Apply field changes to a job and refresh its timestamp."""
        job = self.require_job(job_id)
        for key, value in changes.items():
            setattr(job, key, value)
        job.timestamp = utc_now()
        return job

    def set_status(self, job_id: str, status: JobStatus) -> Job:
        logger.debug(f"Job {job_id} -> {status.value}")
        return self.update(job_id, status=status)

    # =========================================================================
    # Reset
    # =========================================================================

    def remove_job(self, job_id: str) -> Job:
        """
        Drop a finished job record.

        Raises:
            JobNotFoundError: unknown job id
            ValueError: the job is still pending or processing
        """
        job = self.require_job(job_id)
        if job.status not in FINISHED_STATUSES:
            raise ValueError(f"Job {job_id} is still {job.status.value}")
        del self._jobs[job_id]
        return job

    def clear_finished(self) -> int:
        """Drop every finished job. Returns the number removed."""
        finished = [job_id for job_id, job in self._jobs.items() if job.status in FINISHED_STATUSES]
        for job_id in finished:
            del self._jobs[job_id]
        if finished:
            logger.info(f"Cleared {len(finished)} finished jobs")
        return len(finished)

    def clear_all(self) -> None:
        self._jobs.clear()

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs
