"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

from typing import Any, Dict, Optional
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import uuid
from datetime import datetime, timezone


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for missing or wrong internal API keys."""

    def __init__(
        self,
        detail: str = "A valid X-API-Key header is required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri="https://example.com/problems/authentication-required",
            instance=instance,
            headers={"WWW-Authenticate": "ApiKey"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri="https://example.com/problems/resource-not-found",
            instance=instance,
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for requests that conflict with current server state."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        title: str = "Resource Conflict",
        type_uri: str = "https://example.com/problems/resource-conflict",
        extensions: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=type_uri,
            instance=instance,
            extensions=extensions,
        )


# Sync run guards

class SyncEnvironmentNotPermittedError(ProblemDetailsException):
    """Exception when a sync is requested outside the primary environment."""

    def __init__(self, environment: str, primary_environment: str):
        super().__init__(
            status_code=403,
            title="Sync Not Permitted In Environment",
            detail=(
                f"Catalog sync only runs in the '{primary_environment}' environment "
                f"(current: '{environment}'). Set BYPASS_SYNC_ENVIRONMENT_GUARD=true to override for testing."
            ),
            type_uri="https://example.com/problems/sync-environment-not-permitted",
            extensions={
                "code": "SYNC_ENVIRONMENT_NOT_PERMITTED",
                "retryable": False,
                "environment": environment,
            },
        )


class SyncInProgressError(ConflictError):
    """Exception when a sync is already running in this process."""

    def __init__(self):
        super().__init__(
            title="Sync Already In Progress",
            detail="A catalog sync is already running in this process",
            type_uri="https://example.com/problems/sync-in-progress",
            extensions={"code": "SYNC_IN_PROGRESS", "retryable": True},
        )


class SyncLockUnavailableError(ConflictError):
    """Exception when another instance holds the cross-process sync lock."""

    def __init__(self, lock_key: str):
        super().__init__(
            title="Sync Lock Unavailable",
            detail="Could not acquire the sync lock; another instance may be running",
            type_uri="https://example.com/problems/sync-lock-unavailable",
            extensions={
                "code": "SYNC_LOCK_UNAVAILABLE",
                "retryable": True,
                "lock_key": lock_key,
            },
        )


# Catalog provider errors (brand-fatal, never rendered directly)

class CatalogFetchError(Exception):
    """The provider could not be reached or answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogParseError(Exception):
    """The provider answered, but the payload could not be understood."""


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.problem_details,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    problem_details = {
        "type": "https://example.com/problems/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url),
        "error_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
