"""
Exceptions raised by the growth services and mapped to HTTP status codes by
the API blueprints.
"""


class GrowthServiceError(Exception):
    """Base class for service-layer errors"""
    status_code = 500


class ValidationError(GrowthServiceError):
    """Input rejected before anything was written"""
    status_code = 400


class NotFoundError(GrowthServiceError):
    """A referenced clinic, test or log entry does not exist"""
    status_code = 404


class StorageError(GrowthServiceError):
    """The persistent store failed; the operation may be retried"""
    status_code = 503
