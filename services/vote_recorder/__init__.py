"""
Vote Recorder service.

Records one vote per voter and destination in Firestore:
- Data models and identifier validation
- Error taxonomy mapped to HTTP status codes
- Firestore vote store with the transactional duplicate check
"""

from .errors import (
    VoteRecorderError,
    InvalidRequest,
    MethodNotAllowed,
    StoreUnavailable,
    InternalError,
)
from .models import VoteOutcome, receipt_id, validate_document_id

__all__ = [
    'VoteRecorderError',
    'InvalidRequest',
    'MethodNotAllowed',
    'StoreUnavailable',
    'InternalError',
    'VoteOutcome',
    'receipt_id',
    'validate_document_id',
]

__version__ = '1.0.0'
