"""
JobRequestStore: the read/update port used by offers and payments.

Only status changes flow through here. Callers that need row locks run
inside their own transaction and pass ``for_update=True``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService
from jobs.models import JobRequest, JobRequestStatus

if TYPE_CHECKING:
    from uuid import UUID


class JobRequestStore(BaseService):
    """Lookup and status updates for JobRequest rows."""

    @classmethod
    def get(cls, job_request_id: UUID | str, for_update: bool = False) -> JobRequest:
        """
        Fetch a job request.

        Raises:
            NotFoundError: If no such request exists
        """
        queryset = JobRequest.objects.select_related("seeker")
        if for_update:
            queryset = queryset.select_for_update()
        job = queryset.filter(id=job_request_id).first()
        if job is None:
            raise NotFoundError(
                "Job request not found",
                details={"job_request_id": str(job_request_id)},
            )
        return job

    @classmethod
    def update_status(
        cls,
        job: JobRequest,
        status: str,
        **extra,
    ) -> JobRequest:
        """
        Set the status plus any extra fields and save them.

        Completion and cancellation stamp their timestamps.

        Example:
            JobRequestStore.update_status(job, JobRequestStatus.ASSIGNED, assigned_to=provider)
        """
        previous = job.status
        job.status = status
        update_fields = ["status", "updated_at"]

        if status == JobRequestStatus.COMPLETED and job.completed_at is None:
            job.completed_at = timezone.now()
            update_fields.append("completed_at")
        elif status == JobRequestStatus.CANCELLED and job.cancelled_at is None:
            job.cancelled_at = timezone.now()
            update_fields.append("cancelled_at")

        for field_name, value in extra.items():
            setattr(job, field_name, value)
            update_fields.append(field_name)

        job.save(update_fields=update_fields)

        cls.get_logger().info(
            "Job request status changed",
            extra={
                "job_request_id": str(job.id),
                "from_status": previous,
                "to_status": status,
            },
        )
        return job
