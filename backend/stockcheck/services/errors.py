"""
Typed failures for workflow operations and the result wrapper returned to callers.

Service internals raise WorkflowError subclasses. Public operations are
decorated with @operation, which runs them inside a unit of work and turns
any raised failure into an OperationResult, so callers branch on
``result.ok`` instead of catching.

    ErrorKind       Exception           HTTP
    VALIDATION      ValidationError     400
    NOT_FOUND       NotFoundError       404
    CONFLICT        ConflictError       409
    DEPENDENCY      DependencyError     502
    INTERNAL        InternalError       500
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable, Generic, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from .concurrency import run_with_retry, unit_of_work

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    DEPENDENCY = "DEPENDENCY"
    INTERNAL = "INTERNAL"


class WorkflowError(Exception):
    """Base class; ``kind`` and ``http_status`` are fixed per subclass."""

    kind: ErrorKind = ErrorKind.INTERNAL
    http_status: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        data = {"error": self.message, "kind": self.kind.value}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(WorkflowError):
    """Malformed or missing input; rejected before any write."""
    kind = ErrorKind.VALIDATION
    http_status = 400


class NotFoundError(WorkflowError):
    """Referenced ticket, code, count, user, store or grant is missing or inactive."""
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class ConflictError(WorkflowError):
    """Business rule violation (bad transition, incomplete ticket, ineligible profile)."""
    kind = ErrorKind.CONFLICT
    http_status = 409


class DependencyError(WorkflowError):
    """Product catalog or identity collaborator failed or returned inconsistent data."""
    kind = ErrorKind.DEPENDENCY
    http_status = 502


class InternalError(WorkflowError):
    """Persistence failure."""
    kind = ErrorKind.INTERNAL
    http_status = 500


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of a public workflow operation: a value or a WorkflowError."""

    value: T | None = None
    error: WorkflowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: WorkflowError) -> "OperationResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or re-raise the error (handy in scripts and tests)."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def operation(func: Callable[..., T] | None = None, *, transactional: bool = True):
    """
    Turn a service function into a public operation returning OperationResult.

    transactional=True runs the body inside one unit_of_work (commit on
    success, rollback on any failure) retried on lock/deadlock errors.
    transactional=False is for reads and for best-effort batches whose items
    each open their own unit of work.
    """
    def decorator(fn: Callable[..., T]):
        @wraps(fn)
        def wrapper(*args, **kwargs) -> OperationResult[T]:
            def _op():
                if not transactional:
                    return fn(*args, **kwargs)
                with unit_of_work():
                    return fn(*args, **kwargs)

            try:
                value = run_with_retry(_op) if transactional else _op()
            except WorkflowError as exc:
                logger.info("%s rejected: %s (%s)", fn.__name__, exc.message, exc.kind.value)
                return OperationResult.failure(exc)
            except SQLAlchemyError:
                logger.exception("%s failed in the persistence layer", fn.__name__)
                return OperationResult.failure(InternalError("Persistence failure"))
            return OperationResult.success(value)

        wrapper.__wrapped_operation__ = fn
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
