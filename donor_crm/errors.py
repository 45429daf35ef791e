"""
Standardized error handling for the Donor CRM.

Services raise CRMError (an HTTPException carrying a typed code) so
FastAPI turns them into proper responses, while the message that reaches
the client stays user friendly and the details go to the log.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any, Union

from fastapi import HTTPException

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Typed API error codes."""
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    BAD_REQUEST = "BAD_REQUEST"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    CONFLICT = "CONFLICT"


STATUS_CODES = {
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL_SERVER_ERROR: 500,
}


class CRMError(HTTPException):
    """API error with a typed code."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(status_code=STATUS_CODES[code], detail=message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass
class ErrorContext:
    """Context attached to error log lines."""
    user_id: Optional[str] = None
    organization_id: Optional[str] = None
    resource_id: Optional[Union[str, int]] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    additional_data: Dict[str, Any] = field(default_factory=dict)


DB_ERROR_KEYWORDS = [
    "duplicate key",
    "unique constraint",
    "foreign key",
    "violates",
    "constraint",
    "relation",
    "column",
    "table",
    "database",
    "connection",
    "timeout",
]


class ErrorHandler:
    """Creates typed errors and converts database failures into them."""

    @classmethod
    def create_error(
        cls,
        code: ErrorCode,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ) -> CRMError:
        """
        Create a CRMError and log it.

        INTERNAL_SERVER_ERROR is logged at error level, everything else
        at warning level.
        """
        log_message = cls.format_log_message(message, context, cause)
        if code == ErrorCode.INTERNAL_SERVER_ERROR:
            logger.error(log_message)
        else:
            logger.warning(log_message)

        error = CRMError(code, message)
        if cause is not None:
            error.__cause__ = cause
        return error

    @classmethod
    def handle_database_error(
        cls, error: BaseException, context: Optional[ErrorContext] = None
    ) -> CRMError:
        """Map a database exception onto the closest typed error."""
        message = str(error).lower()

        if "duplicate key" in message or "unique constraint" in message:
            return cls.create_error(
                ErrorCode.CONFLICT,
                "A record with this information already exists",
                context,
                error,
            )

        if "foreign key" in message or "violates" in message:
            return cls.create_error(
                ErrorCode.BAD_REQUEST,
                "This operation would violate data integrity constraints",
                context,
                error,
            )

        if "not found" in message or "does not exist" in message:
            return cls.create_error(
                ErrorCode.NOT_FOUND, "The requested resource was not found", context, error
            )

        return cls.create_error(
            ErrorCode.INTERNAL_SERVER_ERROR, "A database error occurred", context, error
        )

    @staticmethod
    def format_log_message(
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ) -> str:
        parts = [message]

        if context:
            context_parts = []
            if context.operation:
                context_parts.append(f"operation: {context.operation}")
            if context.user_id:
                context_parts.append(f"userId: {context.user_id}")
            if context.organization_id:
                context_parts.append(f"organizationId: {context.organization_id}")
            if context.resource_type and context.resource_id is not None:
                context_parts.append(f"resource: {context.resource_type}:{context.resource_id}")
            if context_parts:
                parts.append(f"({', '.join(context_parts)})")
            if context.additional_data:
                parts.append(f"data: {json.dumps(context.additional_data, default=str)}")

        if cause is not None:
            parts.append(f"cause: {cause}")

        return " ".join(parts)

    @staticmethod
    def is_database_error(error: BaseException) -> bool:
        message = str(error).lower()
        return any(keyword in message for keyword in DB_ERROR_KEYWORDS)


def not_found(resource: str) -> CRMError:
    """Shortcut for the common '<resource> not found' error."""
    return CRMError(ErrorCode.NOT_FOUND, f"{resource} not found")
