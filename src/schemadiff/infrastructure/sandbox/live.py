"""Statement application against live PostgreSQL engines."""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from schemadiff.core.exceptions import ApplyError
from schemadiff.core.logging import get_logger
from schemadiff.infrastructure.sandbox.base import StatementOutcome

logger = get_logger(__name__)


def _error_message(error: SQLAlchemyError) -> str:
    # Driver errors carry the server message; the wrapper adds SQL and a link
    original = getattr(error, "orig", None)
    return str(original) if original is not None else str(error)


async def apply_each(engine: AsyncEngine, statements: list[str]) -> list[StatementOutcome]:
    """Apply each statement in its own transaction, continuing past failures."""
    outcomes = []
    for statement in statements:
        try:
            async with engine.begin() as conn:
                await conn.exec_driver_sql(statement)
            outcomes.append(StatementOutcome(statement=statement, success=True))
        except SQLAlchemyError as e:
            message = _error_message(e)
            logger.warning("Statement failed", statement=statement, error=message)
            outcomes.append(StatementOutcome(statement=statement, success=False, error=message))
    return outcomes


async def apply_atomic(engine: AsyncEngine, statements: list[str]) -> list[StatementOutcome]:
    """Apply all statements in one transaction.

    Raises:
        ApplyError: On the first failing statement; nothing is committed.
    """
    current = None
    try:
        async with engine.begin() as conn:
            for statement in statements:
                current = statement
                await conn.exec_driver_sql(statement)
    except SQLAlchemyError as e:
        message = _error_message(e)
        logger.error("Atomic apply aborted", statement=current, error=message)
        raise ApplyError(message, statement=current) from e
    return [StatementOutcome(statement=statement, success=True) for statement in statements]
