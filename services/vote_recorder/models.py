"""Pydantic models for request/response validation."""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, validator

# Firestore rejects ids like __name__ and ids longer than 1500 bytes
RESERVED_ID_PATTERN = re.compile(r"^__.*__$")
MAX_ID_BYTES = 1500


def validate_document_id(value: str) -> str:
    """
    Validate that a value can be used inside a Firestore document id.

    Args:
        value: Identifier supplied by the caller

    Returns:
        The unchanged identifier

    Raises:
        ValueError: If the identifier is blank or not a legal document id
    """
    if not value or not value.strip():
        raise ValueError("Missing destinationId or voterId")
    if "/" in value or value in (".", "..") or RESERVED_ID_PATTERN.match(value):
        raise ValueError("Invalid destinationId or voterId")
    if len(value.encode("utf-8")) > MAX_ID_BYTES:
        raise ValueError("destinationId or voterId is too long")
    return value


def _escape_key_part(value: str) -> str:
    return value.replace("%", "%25").replace("_", "%5F")


def receipt_id(voter_id: str, destination_id: str) -> str:
    """
    Document id of the receipt for one voter and destination.

    Underscores and percent signs inside each part are percent-encoded, so the
    single unescaped underscore always separates voter from destination.
    Ids containing neither character are joined unchanged.
    """
    return f"{_escape_key_part(voter_id)}_{_escape_key_part(destination_id)}"


@dataclass
class VoteOutcome:
    """
    Result of one vote recording transaction.

    Attributes:
        destination_id: Destination the vote was cast for
        count: Tally after the transaction (new count, or current count for duplicates)
        already_voted: True when a receipt already existed and nothing was written
    """
    destination_id: str
    count: int
    already_voted: bool = False


class VoteRequest(BaseModel):
    """Vote submission request model."""

    destinationId: str = Field(..., description="Destination identifier")
    voterId: str = Field(..., description="Voter identifier")

    @validator("destinationId", "voterId")
    def validate_identifier(cls, v):
        """Validate identifiers are non-empty Firestore document ids."""
        return validate_document_id(v)

    class Config:
        json_schema_extra = {
            "example": {
                "destinationId": "paris",
                "voterId": "u1"
            }
        }


class VoteRecordedResponse(BaseModel):
    """Response returned when a new vote was counted."""

    success: Literal[True] = True
    message: str = Field(..., description="Response message")
    newCount: int = Field(..., ge=1, description="Tally after this vote")

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Vote recorded for paris",
                "newCount": 1
            }
        }


class AlreadyVotedResponse(BaseModel):
    """Response returned when the voter already voted for the destination."""

    success: Literal[False] = False
    message: str = "Already voted"
    currentCount: int = Field(..., ge=0, description="Unchanged tally")

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "message": "Already voted",
                "currentCount": 1
            }
        }


class TallyResponse(BaseModel):
    """Vote tally response model."""

    destinationId: str = Field(..., description="Destination identifier")
    voteCount: int = Field(..., ge=0, description="Number of counted votes")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: Literal["healthy", "unhealthy"] = Field(..., description="Overall health status")
    services: dict = Field(..., description="Status of individual services")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "services": {
                    "firestore": "connected"
                },
                "timestamp": "2024-01-15T10:30:00"
            }
        }


class ErrorResponse(BaseModel):
    """Error response model."""

    success: Literal[False] = False
    error: str = Field(..., description="Error message")

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": "Missing destinationId or voterId"
            }
        }
