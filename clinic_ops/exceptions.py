"""
Clinic Ops Exceptions

Custom exception classes for store, session and API error handling.
"""

from typing import Optional


class ClinicError(Exception):
    """Base exception for clinic data errors"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ClinicConfigError(ClinicError):
    """Exception for missing or invalid backend configuration"""
    pass


class SchemaMissingError(ClinicError):
    """Exception raised while the database tables have not been created yet"""
    pass


class ClinicOperationError(ClinicError):
    """Exception for failed reads and writes against the remote store"""
    pass


class StaleSnapshotError(ClinicOperationError):
    """Exception for writes rejected because the row changed since the last refresh"""
    pass


class ClinicValidationError(ClinicError):
    """Exception for invalid input to a mutation"""
    pass


class ClinicAuthError(ClinicError):
    """Exception for session-related errors"""
    pass
