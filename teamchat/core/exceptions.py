"""Custom exception classes for TeamChat."""

from fastapi import HTTPException, status


class TeamChatError(Exception):
    """Base exception for TeamChat."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class AuthenticationError(TeamChatError):
    """Raised when authentication fails."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(TeamChatError):
    """Raised when user lacks permission."""
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFoundError(TeamChatError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(TeamChatError):
    """Raised when a resource already exists."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(TeamChatError):
    """Raised when input validation fails."""
    pass


class InvariantViolationError(TeamChatError):
    """Raised when a change would break a system invariant (e.g. last admin)."""
    pass


class RateLimitExceededError(TeamChatError):
    """Raised when a client exceeds its request budget."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class StorageError(TeamChatError):
    """Raised when MinIO/storage operation fails."""
    status_code = status.HTTP_502_BAD_GATEWAY


class SinkError(TeamChatError):
    """Raised when a backup sink rejects or fails an upload."""
    pass


class SnapshotError(TeamChatError):
    """Raised when the database snapshot for a backup cannot be produced."""
    pass


# HTTP exception shortcuts
def not_found(detail: str = "Resource not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def forbidden(detail: str = "Insufficient permissions") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def bad_request(detail: str = "Bad request") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def conflict(detail: str = "Resource already exists") -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def too_many_requests(detail: str = "Too many requests") -> HTTPException:
    return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
