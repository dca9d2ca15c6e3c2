"""Error taxonomy for the tracking core.

NotFound, Conflict, InvalidState and Forbidden are raised synchronously to the
caller of an operation. UpstreamFailure and PartialIngestFailure belong to
background scraping work and end up recorded on the scraping session.
"""

from typing import Any, Dict, Optional


class TrackerError(Exception):
    """Base class for domain errors."""

    status_code: int = 500
    error: str = "TrackerError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(TrackerError):
    """Referenced entity does not exist or is not visible to the actor."""

    status_code = 404
    error = "NotFound"


class ConflictError(TrackerError):
    """Duplicate creation or an unresolvable concurrent modification."""

    status_code = 409
    error = "Conflict"


class InvalidStateError(TrackerError):
    """Transition not allowed from the entity's current state."""

    status_code = 400
    error = "InvalidState"


class ForbiddenError(TrackerError):
    """Actor lacks the role or ownership required."""

    status_code = 403
    error = "Forbidden"


class InvalidInputError(TrackerError):
    """Operation arguments are out of range."""

    status_code = 422
    error = "InvalidInput"


class UpstreamFailure(TrackerError):
    """The external scraper call failed (transport, timeout, non-2xx, malformed body)."""

    status_code = 502
    error = "UpstreamFailure"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        timeout: bool = False,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.upstream_status = status_code
        self.timeout = timeout


class PartialIngestFailure(TrackerError):
    """One posting of a scraping batch could not be stored."""

    status_code = 422
    error = "PartialIngestFailure"

    def __init__(self, message: str, posting: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"posting": posting} if posting else None)
        self.posting = posting

    def to_record(self) -> Dict[str, Any]:
        posting = self.posting or {}
        return {
            "platform": posting.get("platform"),
            "error_type": "JOB_CREATION_ERROR",
            "message": self.message,
            "title": posting.get("title"),
            "company": posting.get("company"),
        }
