"""
WhatsApp SQL Engine Service - read-only SQL for the assistant

The model writes its own SELECT queries. Only a single SELECT / WITH
statement that filters on organization_id is executed; anything else is
rejected before it reaches the database.
"""

import logging
import re
import time
from typing import Optional, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.database import Base
from ..base import BaseService

logger = logging.getLogger(__name__)

FORBIDDEN_KEYWORDS = ("drop", "truncate", "delete", "update", "insert", "alter", "create", "grant", "revoke")
SCHEMA_TABLES = ("organizations", "donors", "donations", "projects", "staff")
AVAILABLE_TABLES = ", ".join(SCHEMA_TABLES)


class SQLValidationError(ValueError):
    """Query rejected before execution."""


def validate_sql_query(query: str) -> str:
    """
    Check a query is a single read-only statement scoped to an organization.

    Returns:
        The query without a trailing semicolon

    Raises:
        SQLValidationError: The query is not allowed
    """
    statement = query.strip()
    if statement.endswith(";"):
        statement = statement[:-1].rstrip()
    lowered = statement.lower()

    if not lowered:
        raise SQLValidationError("Empty query is not allowed")
    if "--" in lowered or "/*" in lowered or "*/" in lowered:
        raise SQLValidationError("SQL comments are not allowed")
    if ";" in lowered:
        raise SQLValidationError("Multiple statements are not allowed")
    if not re.match(r"^(select|with)\b", lowered):
        raise SQLValidationError("Only SELECT queries are allowed")
    for keyword in FORBIDDEN_KEYWORDS:
        if re.search(rf"\b{keyword}\b", lowered):
            raise SQLValidationError(f"Dangerous SQL operation detected: {keyword.upper()} is not allowed")
    if "organization_id" not in lowered:
        raise SQLValidationError("Queries must filter by organization_id")
    return statement


def classify_error(error_message: str) -> str:
    message = error_message.lower()
    if any(s in message for s in ("syntax error", "unexpected token", "parse error", "at or near")):
        return "syntax"
    if any(s in message for s in ("dangerous", "not allowed", "organization_id")):
        return "security"
    if (
        ("does not exist" in message)
        or ("no such" in message)
        or any(s in message for s in ("constraint", "duplicate key", "foreign key"))
    ):
        return "runtime"
    return "unknown"


def suggest_fix(error_message: str) -> Optional[str]:
    message = error_message.lower()

    near = re.search(r'syntax error at or near "([^"]+)"', message)
    if near:
        return (
            f'Check the SQL syntax near "{near.group(1)}". '
            "Common issues: missing quotes, parentheses, or commas."
        )
    if "organization_id" in message:
        return "Add WHERE organization_id = '<organization id>' to the query."
    if "not allowed" in message or "dangerous" in message:
        return "Only a single read-only SELECT statement without comments can be executed."
    if "does not exist" in message or "no such" in message:
        return f"Check the table/column name spelling. Available tables: {AVAILABLE_TABLES}."
    if "unterminated quoted string" in message or "quoted identifier" in message:
        return "Check for unmatched quotes in string values. Use single quotes for string literals."
    if "syntax error" in message:
        return "Check the SQL syntax: missing quotes, parentheses, or commas."
    return None


def get_schema_description() -> str:
    """Table and column listing for the assistant prompt."""
    lines = ["DATABASE SCHEMA:", ""]
    for table_name in SCHEMA_TABLES:
        table = Base.metadata.tables[table_name]
        lines.append(f"{table_name.upper()} TABLE:")
        for column in table.columns:
            description = f"- {column.name} ({column.type}"
            if column.primary_key:
                description += ", primary key"
            description += ")"
            if column.foreign_keys:
                target = next(iter(column.foreign_keys)).target_fullname
                description += f" references {target}"
            lines.append(description)
        lines.append("")

    lines.append("NOTES:")
    lines.append("- Amounts (donations.amount, projects.goal) are in cents.")
    lines.append("- donors.notes is a JSON array of {created_at, created_by, content} objects.")
    lines.append("- donations have no organization_id; join donors on donations.donor_id = donors.id.")
    lines.append("")
    return "\n".join(lines)


class WhatsAppSQLEngineService(BaseService):
    """Validates and runs assistant-written SQL."""

    def execute_raw_sql(self, query: str, organization_id: str) -> Dict[str, Any]:
        """
        Returns:
            {success: True, data: [rows]} or
            {success: False, error: {message, type, query, suggestion}}
        """
        logger.info(f"[SQL Engine] Executing raw SQL for organization {organization_id}: {query}")

        db = self._get_db()
        try:
            statement = validate_sql_query(query)
            started = time.monotonic()
            # exec_driver_sql: no bind-parameter parsing of ":" in casts
            result = db.connection().exec_driver_sql(statement)
            rows = [dict(row) for row in result.mappings().all()]
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"[SQL Engine] Query returned {len(rows)} rows in {elapsed_ms}ms")
            return {"success": True, "data": rows}
        except (SQLValidationError, SQLAlchemyError) as e:
            if isinstance(e, SQLAlchemyError):
                db.rollback()
                message = str(getattr(e, "orig", None) or e)
            else:
                message = str(e)
            error_type = classify_error(message)
            suggestion = suggest_fix(message)
            logger.error(f"[SQL Engine] Query failed ({error_type}): {message}")
            return {
                "success": False,
                "error": {
                    "message": message,
                    "type": error_type,
                    "query": query,
                    "suggestion": suggestion,
                },
            }
        finally:
            self._close_db(db)

    def get_schema_description(self) -> str:
        return get_schema_description()


def get_whatsapp_sql_engine_service(db: Optional[Session] = None) -> WhatsAppSQLEngineService:
    """Get WhatsApp SQL engine service instance."""
    return WhatsAppSQLEngineService(db)
