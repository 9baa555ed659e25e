"""Kernel exceptions and standardized error responses.

Operations raise KernelError subclasses. The intent boundary converts
them into ErrorResponse dicts so callers branch on `success` instead of
catching exceptions.

Usage:
    from xhe.kernel.errors import validation_error, ErrorCode

    return validation_error(
        "transfer requires a positive integer amount",
        code=ErrorCode.INVALID_ARGUMENT,
        amount=amount,
    )
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Which side of the boundary a failure belongs to.

    - VALIDATION: Caller provided bad input
    - PERMISSION: Operation refused for this identity
    - RESOURCE: Short balance or missing entry
    - EXECUTION: Operation failed while running
    - SYSTEM: Kernel fault, not the caller's
    """

    VALIDATION = "validation"
    PERMISSION = "permission"
    RESOURCE = "resource"
    EXECUTION = "execution"
    SYSTEM = "system"


class ErrorCode(str, Enum):
    """Machine-readable failure codes carried in responses."""

    # Validation errors
    MISSING_ARGUMENT = "missing_argument"
    INVALID_ARGUMENT = "invalid_argument"
    INVALID_TYPE = "invalid_type"
    EMPTY_CONTENT = "empty_content"
    UNKNOWN_SCHEME = "unknown_scheme"
    UNKNOWN_INTENT = "unknown_intent"

    # Permission errors
    SELF_FOLLOW = "self_follow"
    BLOCKED_IDENTITY = "blocked_identity"

    # Resource errors
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NOT_FOUND = "not_found"

    # Execution errors
    RUNTIME_ERROR = "runtime_error"

    # System errors
    INTERNAL_ERROR = "internal_error"
    STORAGE_ERROR = "storage_error"


class KernelError(Exception):
    """Base class for errors raised by kernel operations."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(self, message: str, **details: object) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(KernelError):
    """Bad input: empty content, non-positive amount, missing recipient."""

    code = ErrorCode.INVALID_ARGUMENT
    category = ErrorCategory.VALIDATION

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
        **details: object,
    ) -> None:
        super().__init__(message, **details)
        self.code = code


class UnknownSchemeError(ValidationError):
    """Address generation was asked for an unsupported scheme."""

    def __init__(self, scheme: object) -> None:
        super().__init__(
            f"Unknown scheme: {scheme}",
            code=ErrorCode.UNKNOWN_SCHEME,
            scheme=str(scheme),
        )
        self.scheme = scheme


class InsufficientBalanceError(KernelError):
    """Transfer amount exceeds the sender's balance."""

    code = ErrorCode.INSUFFICIENT_FUNDS
    category = ErrorCategory.RESOURCE

    def __init__(self, did: str, balance: int, amount: int) -> None:
        super().__init__(
            f"Insufficient balance: have {balance}, need {amount}",
            did=did,
            balance=balance,
            amount=amount,
        )
        self.did = did
        self.balance = balance
        self.amount = amount


class SelfFollowError(KernelError):
    """An identity tried to follow (or block) itself."""

    code = ErrorCode.SELF_FOLLOW
    category = ErrorCategory.PERMISSION

    def __init__(self, did: str, action: str = "follow") -> None:
        super().__init__(f"Cannot {action} self", did=did)
        self.did = did


class BlockedIdentityError(KernelError):
    """Follow target is on the block list."""

    code = ErrorCode.BLOCKED_IDENTITY
    category = ErrorCategory.PERMISSION

    def __init__(self, did: str) -> None:
        super().__init__(f"Cannot follow blocked identity: {did}", did=did)
        self.did = did


class StorageError(Exception):
    """Durable store read or write failure.

    Raised inside storage backends only. The store logs it and substitutes
    a default, so it never reaches kernel callers.
    """

    def __init__(self, key: str, operation: str, cause: Exception | None = None) -> None:
        self.key = key
        self.operation = operation
        self.cause = cause
        super().__init__(f"Storage {operation} failed for {key!r}: {cause}")


@dataclass
class ErrorResponse:
    """Failure payload returned across the intent boundary.

    `code` and `category` hold enum values so the dict is plain JSON.
    `details` is dropped from the dict when empty.
    """

    success: bool = False
    error: str = ""
    code: str = ""
    category: str = ""
    retriable: bool = False
    details: dict[str, object] | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "success": self.success,
            "error": self.error,
            "code": self.code,
            "category": self.category,
            "retriable": self.retriable,
        }
        if self.details:
            out["details"] = self.details
        return out


def _respond(
    category: ErrorCategory,
    message: str,
    code: ErrorCode,
    retriable: bool,
    details: dict[str, object],
) -> dict[str, object]:
    return ErrorResponse(
        error=message,
        code=code.value,
        category=category.value,
        retriable=retriable,
        details=details or None,
    ).to_dict()


def validation_error(
    message: str,
    code: ErrorCode = ErrorCode.INVALID_ARGUMENT,
    **details: object,
) -> dict[str, object]:
    """Response for bad caller input, e.g. validation_error("...", amount=-1)."""
    return _respond(ErrorCategory.VALIDATION, message, code, False, details)


def permission_error(
    message: str,
    code: ErrorCode = ErrorCode.SELF_FOLLOW,
    **details: object,
) -> dict[str, object]:
    """Response for an operation the current identity may not perform."""
    return _respond(ErrorCategory.PERMISSION, message, code, False, details)


def resource_error(
    message: str,
    code: ErrorCode = ErrorCode.NOT_FOUND,
    **details: object,
) -> dict[str, object]:
    """Response for a short balance or a missing record."""
    return _respond(ErrorCategory.RESOURCE, message, code, False, details)


def execution_error(
    message: str,
    code: ErrorCode = ErrorCode.RUNTIME_ERROR,
    retriable: bool = False,
    **details: object,
) -> dict[str, object]:
    return _respond(ErrorCategory.EXECUTION, message, code, retriable, details)


def system_error(
    message: str,
    code: ErrorCode = ErrorCode.INTERNAL_ERROR,
    retriable: bool = True,
    **details: object,
) -> dict[str, object]:
    """Response for an unexpected kernel failure. Retriable by default."""
    return _respond(ErrorCategory.SYSTEM, message, code, retriable, details)


_FACTORIES = {
    ErrorCategory.VALIDATION: validation_error,
    ErrorCategory.PERMISSION: permission_error,
    ErrorCategory.RESOURCE: resource_error,
    ErrorCategory.EXECUTION: execution_error,
    ErrorCategory.SYSTEM: system_error,
}


def error_response_for(exc: KernelError) -> dict[str, object]:
    """Convert a raised KernelError into its response dict."""
    factory = _FACTORIES[exc.category]
    return factory(exc.message, exc.code, **exc.details)
