"""
Typed errors surfaced by the skill/team engine.

Raw store exceptions never leave the engine: every SQLAlchemy failure is
wrapped in a StorageError that names the operation and table it hit.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"


class ErrorCode(str, Enum):
    RLS_VIOLATION = "DB_001"
    QUERY_FAILED = "DB_002"
    INVALID_FORMAT = "VAL_001"
    INVALID_VALUE = "VAL_002"
    DUPLICATE_VALUE = "VAL_003"
    NOT_FOUND = "VAL_005"
    INSUFFICIENT_ROLE = "AUTHZ_001"


class AutoCRMError(Exception):
    """Base for every error the engine raises on purpose."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ValidationError(AutoCRMError):
    """Input failed normalization or schema checks. Never retried."""

    def __init__(
        self,
        message: str,
        field: str,
        value: Any = None,
        code: ErrorCode = ErrorCode.INVALID_FORMAT,
    ):
        super().__init__(code, message)
        self.field = field
        self.value = value


class StorageError(AutoCRMError):
    """The relational store call failed (network, constraint, row security)."""

    def __init__(
        self,
        message: str,
        operation: str,
        table: str,
        code: ErrorCode = ErrorCode.QUERY_FAILED,
        unique_violation: bool = False,
    ):
        super().__init__(code, message)
        self.operation = operation
        self.table = table
        self.unique_violation = unique_violation


class AuthorizationError(AutoCRMError):
    """Caller lacks the role a privileged operation requires. Fails fast."""

    def __init__(self, message: str, required_role: str):
        super().__init__(ErrorCode.INSUFFICIENT_ROLE, message)
        self.required_role = required_role


def _sqlstate(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    # asyncpg exposes .sqlstate, psycopg exposes .pgcode
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: SQLAlchemyError) -> bool:
    if not isinstance(exc, IntegrityError):
        return False
    if _sqlstate(exc) == UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(getattr(exc, "orig", exc))


def to_storage_error(exc: SQLAlchemyError, operation: str, table: str) -> StorageError:
    if _sqlstate(exc) == INSUFFICIENT_PRIVILEGE:
        return StorageError(
            "Access denied by security policy",
            operation,
            table,
            code=ErrorCode.RLS_VIOLATION,
        )
    return StorageError(
        "Database operation failed",
        operation,
        table,
        unique_violation=is_unique_violation(exc),
    )


@contextmanager
def translate_storage_errors(operation: str, table: str):
    """Re-raise any SQLAlchemy failure inside the block as a StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Store %s on %s failed: %s", operation, table, e)
        raise to_storage_error(e, operation, table) from e
