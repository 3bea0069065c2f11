"""
Error taxonomy shared by the dashboard components.

Local, recoverable errors (validation, transient poll failures) never travel
past the component that raised them. User-impacting errors (submission, job,
refresh, delete) are reported once on the notice board and leave the raising
component in a usable state.
"""

from __future__ import annotations

from typing import Optional


class DashboardError(Exception):
    """Base class for every error raised by recipe_admin."""


class RequestValidationError(DashboardError):
    """A generation request is malformed or incomplete; nothing was sent."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class JobAlreadyRunningError(DashboardError):
    """A generation job is already active."""


class SubmissionError(DashboardError):
    """The initial generation call failed (network error or non-2xx)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JobError(DashboardError):
    """The status endpoint reported the job as failed."""


class TransientPollError(DashboardError):
    """A single status check failed; the next tick retries."""


class RefreshError(DashboardError):
    """The bucket listing could not be loaded."""


class DeleteError(DashboardError):
    """The bucket refused or failed to delete an artifact."""

    def __init__(self, entry_id: str, message: str) -> None:
        super().__init__(message)
        self.entry_id = entry_id
