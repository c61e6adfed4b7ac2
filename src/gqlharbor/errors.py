"""Error types raised by gqlharbor and the client-facing error formatter."""

from enum import Enum
from typing import Any

from ariadne import format_error as ariadne_format_error
from graphql import GraphQLError


class ErrorCode(str, Enum):
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_DIRECTIVE_ARGUMENT = "INVALID_DIRECTIVE_ARGUMENT"
    SERVICE_RESTARTING = "SERVICE_RESTARTING"


class SchemaConfigurationError(Exception):
    """Raised while building the schema when directives cannot be applied.

    An invalid schema must never serve traffic, so this error is fatal for startup
    and is never retried.
    """


class ClassifiedError(Exception):
    """Request-scoped error that carries a classification code for clients.

    graphql-core keeps a reference to the raised exception as `original_error`
    and copies `extensions` from it when it wraps the error with a path.
    """

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def extensions(self) -> dict[str, Any]:
        return {"code": self.code.value}


class InvalidEmailError(ClassifiedError, ValueError):
    code = ErrorCode.INVALID_EMAIL


class DirectiveArgumentError(ClassifiedError, ValueError):
    code = ErrorCode.INVALID_DIRECTIVE_ARGUMENT


def get_error_code(error: BaseException) -> str | None:
    """Return the classification code of an error or of any error it wraps."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ClassifiedError):
            return current.code.value
        extensions = getattr(current, "extensions", None)
        if isinstance(extensions, dict) and isinstance(extensions.get("code"), str):
            return extensions["code"]
        current = getattr(current, "original_error", None) or current.__cause__
    return None


def format_error(error: GraphQLError, debug: bool = False) -> dict[str, Any]:
    """Format a GraphQL error for the response payload.

    Builds on ariadne's formatter and makes sure `extensions.code` is present
    whenever the error (or the exception it wraps) is classified.
    """
    formatted = ariadne_format_error(error, debug)
    code = get_error_code(error)
    if code is not None:
        extensions = formatted.setdefault("extensions", {})
        extensions.setdefault("code", code)
    return formatted
