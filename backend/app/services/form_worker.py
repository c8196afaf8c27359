"""HTTP client for the external IRS form-generation worker."""

import logging
import uuid

import httpx

logger = logging.getLogger(__name__)


class FormWorkerError(Exception):
    """The worker could not be reached or refused the job."""


class FormWorkerClient:
    """Enqueues form jobs on the worker (``POST /generate-form``)."""

    def __init__(self, base_url: str, token: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout

    async def enqueue(self, job_id: uuid.UUID, user_id: uuid.UUID, form_type: str) -> None:
        """Hand a job to the worker. The worker answers 202 and runs it in the background."""
        url = f"{self._base_url}/generate-form"
        logger.info("Enqueuing %s job %s for user %s", form_type, job_id, user_id)
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    url,
                    json={
                        "jobId": str(job_id),
                        "userId": str(user_id),
                        "formType": form_type,
                    },
                    headers={"Authorization": f"Bearer {self._token}"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise FormWorkerError(f"Worker request failed for job {job_id}: {e}") from e
