from fastapi import status


class POSError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(POSError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(POSError):
    status_code = status.HTTP_404_NOT_FOUND


class BusinessRuleError(POSError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(POSError):
    status_code = status.HTTP_409_CONFLICT
