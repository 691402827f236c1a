"""
Jobs application.

A JobRequest is a seeker's request for a service. Providers bid on open
requests through offers; accepting an offer assigns the request, and
settlement moves it to in_progress, completed or cancelled.

Usage:
    from jobs.services import JobRequestStore

    job = JobRequestStore.get(job_request_id)
    JobRequestStore.update_status(job, JobRequestStatus.ASSIGNED, assigned_to=provider)
"""
