"""
Domain exceptions shared by the socket gateway and the REST routers.

Socket handlers turn these into `chat-error` / `error` events for the
originating connection; routers turn them into HTTP errors.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )

    def to_event(self) -> Dict[str, Any]:
        """Payload sent to the client over the socket."""
        return {"message": self.message, "code": self.code}


class ValidationException(DomainException):
    """Client sent something unusable (empty text, no room)."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(DomainException):
    """Connection or request is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Authenticated identity does not own the resource it acts on."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    """Referenced request/order/user does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ServiceException(DomainException):
    """Infrastructure failure (store unreachable, write rejected)."""

    def to_event(self) -> Dict[str, Any]:
        return {"message": self.message or "An error occurred processing your request", "code": self.code}
