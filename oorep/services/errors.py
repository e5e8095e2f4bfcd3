"""
Service layer exceptions.

Every error raised by the client derives from OOREPError. The class of an
error decides how it is handled:

- ValidationError: bad input, never retried, safe to show
- NetworkError: transport or HTTP failure, retried up to the bound
- RequestTimeoutError: deadline exceeded, retried up to the bound
- RateLimitError: upstream throttling, never retried, safe to show
- NotFoundError: named tool or resource does not exist
"""

import pydantic


class OOREPError(Exception):
    """Base exception for all OOREP client errors."""

    def __init__(self, message: str, cause: BaseException | None = None):
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(OOREPError):
    """Invalid user input."""

    pass


class NetworkError(OOREPError):
    """Request failed at the transport or HTTP level."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        cause: BaseException | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, cause)


class ResponseParseError(NetworkError):
    """Upstream answered 2xx with a body that is not valid JSON or not the expected shape."""

    pass


# What reading a payload of the wrong shape raises.
RESPONSE_SHAPE_ERRORS = (KeyError, IndexError, TypeError, AttributeError, pydantic.ValidationError)


def unexpected_shape(what: str, cause: BaseException) -> ResponseParseError:
    return ResponseParseError(f"Unexpected OOREP response shape: {what}", cause=cause)


class RequestTimeoutError(OOREPError):
    """Request timed out."""

    def __init__(
        self,
        message: str,
        timeout: float | None = None,
        cause: BaseException | None = None,
    ):
        self.timeout = timeout
        super().__init__(message, cause)


class RateLimitError(OOREPError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        retry_after: int = 60,
        cause: BaseException | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, cause)


class NotFoundError(OOREPError):
    """A requested tool or resource does not exist."""

    def __init__(self, resource_type: str, resource_name: str):
        self.resource_type = resource_type
        self.resource_name = resource_name
        super().__init__(f"{resource_type} not found: {resource_name}")


def sanitize_error(error: BaseException) -> Exception:
    """
    Rewrite an error before it crosses the outward boundary.

    Only validation and rate limit errors pass through unchanged. Everything
    else is replaced by a message that carries no upstream detail.
    """
    if isinstance(error, (ValidationError, RateLimitError)):
        return error

    if isinstance(error, NotFoundError):
        return OOREPError(f"{error.resource_type} not found: {error.resource_name}")

    if isinstance(error, NetworkError):
        msg = "Network error while contacting OOREP"
        if error.status_code:
            msg += f" (HTTP {error.status_code})"
        return OOREPError(msg)

    if isinstance(error, RequestTimeoutError):
        return OOREPError("Request to OOREP timed out")

    if isinstance(error, OOREPError):
        return OOREPError("An error occurred while processing your request")

    if isinstance(error, pydantic.ValidationError):
        return validation_error_from_pydantic(error)

    return OOREPError("An unexpected error occurred while processing your request")


def validation_error_from_pydantic(error: pydantic.ValidationError) -> ValidationError:
    """Convert a pydantic error into a ValidationError naming the first field."""
    issues = error.errors()
    if not issues:
        return ValidationError("Validation error: Invalid input", cause=error)

    first = issues[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    where = f" in {field}" if field else ""
    return ValidationError(f"Validation error{where}: {first['msg']}", cause=error)
