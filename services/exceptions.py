"""
Tracking service exceptions

Write paths (click creation, conversion marking, cache write-back) raise these
and let them propagate; routes translate them into HTTP responses.
"""


class TrackingError(Exception):
    """Base class for errors surfaced to API callers"""
    status_code = 500
    default_code = 'TRACKING_ERROR'

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self):
        return {'code': self.code, 'message': self.message}


class ValidationError(TrackingError):
    """Raised when input is missing or malformed; nothing was written"""
    status_code = 400
    default_code = 'VALIDATION_ERROR'


class NotFoundError(TrackingError):
    """Raised when a click, offer or session does not exist; nothing was written"""
    status_code = 404
    default_code = 'NOT_FOUND'


class InternalError(TrackingError):
    """Raised when storage or a transaction fails"""
    status_code = 500
    default_code = 'INTERNAL_ERROR'


class EPCComputationError(TrackingError):
    """Raised when an EPC value could not be derived from the ledger"""
    status_code = 500
    default_code = 'EPC_COMPUTATION_FAILED'
