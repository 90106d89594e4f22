"""Error taxonomy for the Vote Recorder service.

Every error carries the HTTP status code it is reported with. The API layer
renders them as ``{"success": false, "error": message}``.
"""
from typing import Optional

from fastapi import status


class VoteRecorderError(Exception):
    """Base class for errors that terminate a single request."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRequest(VoteRecorderError):
    """Missing, empty or unparseable request input."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing destinationId or voterId"


class MethodNotAllowed(VoteRecorderError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    default_message = "Method Not Allowed"


class StoreUnavailable(VoteRecorderError):
    """The Firestore client could not be constructed."""

    default_message = "Firebase initialization failed."


class InternalError(VoteRecorderError):
    default_message = "Internal server error processing vote."
